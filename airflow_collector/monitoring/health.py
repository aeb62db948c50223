"""Salud por adapter.

Un HealthTracker por adapter. Solo record_scrape() muta el estado; las
lecturas (emisión, endpoint /health/adapters) toman el lado lector del mismo
lock, así que nunca ven un estado a medio actualizar.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

from ..emission.metrics_builder import MetricsBuilder
from ..errors import RetryCancelled
from ..resilience.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_UNHEALTHY_THRESHOLD = 3


@dataclass(frozen=True)
class HealthState:
    """Snapshot inmutable del estado de salud."""
    scraper: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    consecutive_failures: int = 0
    last_duration: float = 0.0
    rolling_avg_duration: float = 0.0
    max_duration: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    healthy: bool = True

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.succeeded / self.total

    def to_dict(self) -> dict:
        return {
            "scraper": self.scraper,
            "healthy": self.healthy,
            "total_scrapes": self.total,
            "successful_scrapes": self.succeeded,
            "failed_scrapes": self.failed,
            "success_rate": round(self.success_rate, 4),
            "consecutive_failures": self.consecutive_failures,
            "last_duration_ms": round(self.last_duration * 1000, 2),
            "avg_duration_ms": round(self.rolling_avg_duration * 1000, 2),
            "max_duration_ms": round(self.max_duration * 1000, 2),
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
        }


class HealthTracker:
    """Estadísticas móviles y clasificación healthy/unhealthy.

    Reglas:
    - Error: consecutive_failures += 1; healthy = False al llegar al umbral (3)
    - Éxito: consecutive_failures = 0, healthy = True, media móvil 0.9/0.1
    """

    def __init__(self, scraper: str, unhealthy_threshold: int = DEFAULT_UNHEALTHY_THRESHOLD):
        self.scraper = scraper
        self._threshold = unhealthy_threshold
        self._lock = ReadWriteLock()
        self._state = HealthState(scraper=scraper)

    def record_scrape(self, duration: float, error: Optional[BaseException] = None) -> None:
        """Registra el resultado de un scrape."""
        with self._lock.write():
            s = self._state
            total = s.total + 1
            if error is not None:
                consecutive = s.consecutive_failures + 1
                healthy = s.healthy and consecutive < self._threshold
                self._state = HealthState(
                    scraper=s.scraper,
                    total=total,
                    succeeded=s.succeeded,
                    failed=s.failed + 1,
                    consecutive_failures=consecutive,
                    last_duration=duration,
                    rolling_avg_duration=s.rolling_avg_duration,
                    max_duration=s.max_duration,
                    last_error=str(error) or type(error).__name__,
                    last_error_at=datetime.now(timezone.utc),
                    last_success_at=s.last_success_at,
                    healthy=healthy,
                )
                if s.healthy and not healthy:
                    logger.error(
                        "HEALTH scraper=%s marked unhealthy consecutive_errors=%d err=%s",
                        self.scraper, consecutive, error,
                    )
                return

            if s.rolling_avg_duration == 0:
                avg = duration
            else:
                avg = (s.rolling_avg_duration * 9 + duration) / 10
            if not s.healthy:
                logger.info("HEALTH scraper=%s recovered", self.scraper)
            self._state = HealthState(
                scraper=s.scraper,
                total=total,
                succeeded=s.succeeded + 1,
                failed=s.failed,
                consecutive_failures=0,
                last_duration=duration,
                rolling_avg_duration=avg,
                max_duration=max(s.max_duration, duration),
                last_error=s.last_error,
                last_error_at=s.last_error_at,
                last_success_at=datetime.now(timezone.utc),
                healthy=True,
            )

    def is_healthy(self) -> bool:
        with self._lock.read():
            return self._state.healthy

    def snapshot(self) -> HealthState:
        with self._lock.read():
            return self._state

    def reset(self) -> None:
        """Resetea todas las métricas (útil para tests)."""
        with self._lock.write():
            self._state = HealthState(scraper=self.scraper)

    def track(self, fn: Callable[[], T]) -> T:
        """Ejecuta `fn` midiendo duración y registrando el resultado.

        La excepción se registra y se propaga. Una cancelación por parada
        (RetryCancelled) se propaga sin registrarse: no es un fallo del scrape.
        """
        start = time.monotonic()
        try:
            result = fn()
        except RetryCancelled:
            logger.debug("SCRAPE_CANCELLED scraper=%s", self.scraper)
            raise
        except Exception as e:
            duration = time.monotonic() - start
            self.record_scrape(duration, e)
            logger.warning("SCRAPE_FAILED scraper=%s duration=%.3fs err=%s", self.scraper, duration, e)
            raise
        duration = time.monotonic() - start
        self.record_scrape(duration)
        logger.debug("SCRAPE_OK scraper=%s duration=%.3fs", self.scraper, duration)
        return result

    def emit_metrics(self, builder: MetricsBuilder, ts: datetime) -> None:
        s = self.snapshot()
        builder.record_scraper_health(
            scraper=s.scraper,
            total=s.total,
            succeeded=s.succeeded,
            failed=s.failed,
            consecutive_failures=s.consecutive_failures,
            healthy=s.healthy,
            last_duration=s.last_duration,
            avg_duration=s.rolling_avg_duration,
            max_duration=s.max_duration,
            ts=ts,
        )
