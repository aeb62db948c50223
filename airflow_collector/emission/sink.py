"""Emission sinks.

EmissionSink is the contract the controller forwards scrape results to.
Sinks are expected to be fast; failures are logged by the caller and never
retried at the scrape layer.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Sequence

from .models import LogRecord, MetricPoint

logger = logging.getLogger(__name__)


class EmissionSink(ABC):
    """Destination for finished metric points and log records."""

    @abstractmethod
    def append_metrics(self, points: Sequence[MetricPoint]) -> None:
        pass

    @abstractmethod
    def append_logs(self, records: Sequence[LogRecord]) -> None:
        pass


class InMemorySink(EmissionSink):
    """Thread-safe sink that keeps everything in memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._metrics: List[MetricPoint] = []
        self._logs: List[LogRecord] = []

    def append_metrics(self, points: Sequence[MetricPoint]) -> None:
        with self._lock:
            self._metrics.extend(points)

    def append_logs(self, records: Sequence[LogRecord]) -> None:
        with self._lock:
            self._logs.extend(records)

    @property
    def metrics(self) -> List[MetricPoint]:
        with self._lock:
            return list(self._metrics)

    @property
    def logs(self) -> List[LogRecord]:
        with self._lock:
            return list(self._logs)


class LoggingSink(EmissionSink):
    """Sink that only writes batch summaries to the log (headless runs)."""

    def __init__(self, verbose: bool = False):
        self._verbose = verbose

    def append_metrics(self, points: Sequence[MetricPoint]) -> None:
        logger.info("EMIT metrics=%d", len(points))
        if self._verbose:
            for p in points:
                logger.info("METRIC %s=%s %s %s", p.name, p.value, p.unit, p.attributes)

    def append_logs(self, records: Sequence[LogRecord]) -> None:
        logger.info("EMIT logs=%d", len(records))
        if self._verbose:
            for r in records:
                logger.info("LOG [%s] %s %s", r.severity_text, r.body, r.attributes)
