"""Retry con backoff exponencial acotado.

Envuelve cualquier operación que pueda fallar. La espera entre intentos es
cancelable vía threading.Event para que la parada del controller no quede
bloqueada detrás de un backoff.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from ..errors import NonTransientError, RetryCancelled, RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Política de retry (inmutable, compartida por referencia)."""

    max_attempts: int = 3
    initial_interval: float = 1.0  # segundos
    max_interval: float = 10.0  # segundos
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.initial_interval < 0 or self.max_interval < 0:
            raise ValueError("intervals must be non-negative")

    def calculate_delay(self, attempt: int) -> float:
        """Delay antes del intento `attempt` (1-indexed).

        El primer intento no espera; el intento k espera
        min(initial * multiplier^(k-2), max_interval).
        """
        if attempt <= 1:
            return 0.0
        delay = self.initial_interval * (self.multiplier ** (attempt - 2))
        return min(delay, self.max_interval)


def is_transient_default(exc: BaseException) -> bool:
    return not isinstance(exc, NonTransientError)


class RetryExecutor:
    """Ejecutor de operaciones con retry.

    Uso:
        executor = RetryExecutor(policy)
        body = executor.execute("GET /api/v1/dags", fetch, cancel=stop_event)
    """

    def __init__(self, policy: Optional[RetryPolicy] = None):
        self._policy = policy or RetryPolicy()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def execute(
        self,
        operation: str,
        fn: Callable[[], T],
        cancel: Optional[threading.Event] = None,
        is_transient: Optional[Callable[[BaseException], bool]] = None,
    ) -> T:
        """Ejecuta `fn` con retry.

        Args:
            operation: Nombre de la operación (para logs y errores)
            fn: Función sin argumentos a ejecutar
            cancel: Evento de parada; interrumpe la espera entre intentos
            is_transient: Clasificador; False corta sin consumir intentos

        Returns:
            Resultado de `fn`

        Raises:
            RetryCancelled: si `cancel` se activa antes de un reintento
            RetryExhausted: si se agotan los intentos (encadena el último error)
            La excepción original si es no transitoria
        """
        policy = self._policy
        classify = is_transient or is_transient_default
        cancel = cancel or threading.Event()
        last_error: Optional[Exception] = None

        for attempt in range(1, policy.max_attempts + 1):
            if attempt > 1:
                delay = policy.calculate_delay(attempt)
                logger.debug(
                    "RETRY op=%s attempt=%d/%d delay=%.2fs",
                    operation, attempt, policy.max_attempts, delay,
                )
                if cancel.wait(delay) or cancel.is_set():
                    raise RetryCancelled(operation, attempt)

            try:
                result = fn()
            except Exception as e:
                if not classify(e):
                    logger.warning(
                        "RETRY_ABORTED op=%s attempt=%d err=%s (non-transient)",
                        operation, attempt, e,
                    )
                    raise
                last_error = e
                logger.warning(
                    "RETRY_FAILED op=%s attempt=%d/%d err=%s",
                    operation, attempt, policy.max_attempts, e,
                )
                continue

            if attempt > 1:
                logger.info("RETRY_OK op=%s attempts=%d", operation, attempt)
            return result

        logger.error(
            "RETRY_EXHAUSTED op=%s attempts=%d err=%s",
            operation, policy.max_attempts, last_error,
        )
        raise RetryExhausted(operation, policy.max_attempts, last_error) from last_error
