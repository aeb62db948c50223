"""Receptor StatsD sobre UDP.

Flujo:
  datagrama UDP → listener thread → ingest() → parse_line → AggregationTable.apply
  controller tick → scrape() → snapshot bajo read lock → MetricPoints

Los valores son acumulativos desde el arranque (temporality=cumulative).
Con temporality=delta el scrape vacía contadores y timers.
"""

from __future__ import annotations

import logging
import socket
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ...config import TEMPORALITY_DELTA, StatsDConfig
from ...emission.metrics_builder import MetricsBuilder
from ...emission.models import ScrapeResult
from ...errors import AdapterStartError
from ..base import Adapter
from .parser import KIND_COUNTER, KIND_GAUGE, KIND_TIMER, parse_line
from .table import AggregationTable

logger = logging.getLogger(__name__)


def parse_endpoint(endpoint: str) -> Tuple[str, int]:
    host, sep, port = endpoint.rpartition(":")
    if not sep:
        raise ValueError(f"invalid endpoint '{endpoint}', expected host:port")
    return host or "0.0.0.0", int(port)


class StatsDAdapter(Adapter):
    """Listener UDP + tabla de agregación compartida."""

    def __init__(self, cfg: StatsDConfig):
        self._cfg = cfg
        self._table = AggregationTable()
        self._mb = MetricsBuilder()
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stopping = threading.Event()

        self._datagrams_received = 0
        self._lines_accepted = 0
        self._lines_dropped = 0

    @property
    def name(self) -> str:
        return "statsd"

    @property
    def collection_interval(self) -> float:
        return self._cfg.aggregation_interval

    @property
    def table(self) -> AggregationTable:
        return self._table

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        if self._sock is None:
            return None
        return self._sock.getsockname()[:2]

    @property
    def is_listening(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, cancel: threading.Event) -> None:
        logger.info(
            "[STATSD] Starting endpoint=%s aggregation_interval=%.1fs temporality=%s",
            self._cfg.endpoint, self._cfg.aggregation_interval, self._cfg.temporality,
        )
        try:
            host, port = parse_endpoint(self._cfg.endpoint)
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.bind((host, port))
            except OSError:
                sock.close()
                raise
        except (OSError, ValueError) as e:
            raise AdapterStartError(self.name, f"failed to listen on UDP {self._cfg.endpoint}: {e}") from e

        sock.settimeout(self._cfg.read_timeout)
        self._sock = sock
        self._stopping.clear()
        self._thread = threading.Thread(target=self._listen, name="statsd-listener", daemon=True)
        self._thread.start()
        logger.info("[STATSD] Listening on %s:%d", *self.bound_address)

    def _listen(self) -> None:
        sock = self._sock
        while not self._stopping.is_set():
            try:
                data, _ = sock.recvfrom(self._cfg.buffer_size)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stopping.is_set():
                    break
                logger.error("[STATSD] Error reading from UDP: %s", e)
                continue
            if self._stopping.is_set():
                break
            self.ingest(data.decode("utf-8", errors="replace"))
        logger.debug("[STATSD] Listener loop exited")

    def ingest(self, datagram: str) -> int:
        """Procesa un datagrama; cada línea inválida se descarta por separado.

        Returns:
            Número de líneas agregadas
        """
        self._datagrams_received += 1
        accepted = 0
        for line in datagram.split("\n"):
            if not line.strip():
                continue
            sample = parse_line(line)
            if sample is None or not self._table.apply(sample):
                self._lines_dropped += 1
                continue
            accepted += 1
        self._lines_accepted += accepted
        return accepted

    def scrape(self, cancel: threading.Event) -> ScrapeResult:
        if self._cfg.temporality == TEMPORALITY_DELTA:
            cells = self._table.drain()
        else:
            cells = self._table.snapshot()

        now = datetime.now(timezone.utc)
        for cell in cells:
            if cell.kind == KIND_COUNTER:
                self._mb.record_generic_counter(cell.value, cell.name, cell.tags, now)
            elif cell.kind == KIND_GAUGE:
                self._mb.record_generic_gauge(cell.value, cell.name, cell.tags, now)
            elif cell.kind == KIND_TIMER and cell.count > 0:
                self._mb.record_generic_timer(cell.avg, cell.min, cell.max, cell.name, cell.tags, now)

        logger.debug("[STATSD] Scraped metric_count=%d", len(cells))
        return ScrapeResult(metrics=self._mb.emit())

    def shutdown(self) -> None:
        logger.info("[STATSD] Shutting down")
        self._stopping.set()
        if self._sock is not None:
            self._sock.close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self._sock = None
        logger.info(
            "[STATSD] Stopped. datagrams=%d accepted=%d dropped=%d",
            self._datagrams_received, self._lines_accepted, self._lines_dropped,
        )

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "listening": self.is_listening,
            "cells": len(self._table),
            "datagrams_received": self._datagrams_received,
            "lines_accepted": self._lines_accepted,
            "lines_dropped": self._lines_dropped,
        }
