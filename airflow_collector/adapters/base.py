"""Adapter - Interface base para todas las fuentes de datos.

Define el contrato común que implementan REST, SQL, StatsD y Log.
El controller solo conoce esta interface, nunca los tipos concretos.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict

from ..emission.models import ScrapeResult


class Adapter(ABC):
    """Interface común para todos los adapters de recolección.

    Cada adapter es dueño de su recurso (sesión HTTP, engine, socket).
    El controller garantiza que scrape() nunca se ejecuta en paralelo
    consigo mismo.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Nombre del adapter: rest_api, database, statsd, logs."""
        pass

    @property
    def collection_interval(self) -> float:
        """Intervalo de scrape en segundos."""
        return 30.0

    @abstractmethod
    def start(self, cancel: threading.Event) -> None:
        """Abre conexiones/sockets.

        Raises:
            AdapterStartError: si el recurso no se pudo establecer
        """
        pass

    @abstractmethod
    def scrape(self, cancel: threading.Event) -> ScrapeResult:
        """Ejecuta un ciclo de recolección.

        Args:
            cancel: Señal de parada del controller; interrumpe los backoffs
        """
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Cierra recursos. Debe bloquear hasta que no haya actividad en vuelo."""
        pass

    @property
    def stats(self) -> Dict[str, Any]:
        """Estadísticas propias del adapter."""
        return {}
