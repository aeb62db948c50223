"""Componentes de resiliencia: retry con backoff y lock lector/escritor."""

from .retry import RetryExecutor, RetryPolicy, is_transient_default
from .rwlock import ReadWriteLock

__all__ = [
    "RetryExecutor",
    "RetryPolicy",
    "is_transient_default",
    "ReadWriteLock",
]
