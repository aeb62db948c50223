"""Taxonomía de errores del colector.

- TransientError: timeouts, errores de red, 5xx → se reintentan.
- NonTransientError: auth (401/403), 4xx, cuerpos inválidos → no se reintentan.
- RetryCancelled / RetryExhausted: resultado del RetryExecutor.
- AdapterStartError: fallo al abrir conexión/socket en start().
"""

from __future__ import annotations

from typing import Optional


class CollectorError(Exception):
    """Base de todos los errores del colector."""


class ConfigError(CollectorError):
    """Configuración inválida o incompleta."""


class TransientError(CollectorError):
    """Fallo transitorio que puede resolverse reintentando."""


class NonTransientError(CollectorError):
    """Fallo que no se resuelve reintentando."""


class HttpStatusError(NonTransientError):
    """Respuesta HTTP 4xx distinta de 401/403."""

    def __init__(self, status_code: int, path: str):
        self.status_code = status_code
        self.path = path
        super().__init__(f"unexpected status code {status_code} for {path}")


class AuthenticationError(NonTransientError):
    """Credenciales rechazadas (401/403)."""

    def __init__(self, status_code: int, path: str = ""):
        self.status_code = status_code
        self.path = path
        super().__init__(f"authentication failed: status code {status_code}")


class RetryCancelled(CollectorError):
    """La espera entre intentos fue interrumpida por la señal de parada."""

    def __init__(self, operation: str, attempt: int):
        self.operation = operation
        self.attempt = attempt
        super().__init__(f"{operation}: cancelled before attempt {attempt}")


class RetryExhausted(CollectorError):
    """Se agotaron los intentos; __cause__ contiene el último error."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException] = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation}: failed after {attempts} attempts: {last_error}")


class AdapterStartError(CollectorError):
    """El adapter no pudo inicializar su recurso (conexión, socket)."""

    def __init__(self, adapter: str, reason: str):
        self.adapter = adapter
        super().__init__(f"adapter '{adapter}' failed to start: {reason}")
