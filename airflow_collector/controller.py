"""Controller del colector.

Un hilo runner por adapter. Los adapters nunca se serializan entre sí; dentro
de un mismo adapter los scrapes nunca se solapan:
- el runner ejecuta los ticks en secuencia y agrupa los ticks perdidos
- tick() toma un lock no bloqueante por adapter (un tick manual concurrente se salta)

Parada: se activa el evento de cancelación compartido (corta las esperas del
runner y los backoffs del retry), se hace join de los runners y se llama a
shutdown() de cada adapter arrancado.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .adapters.base import Adapter
from .emission.metrics_builder import MetricsBuilder
from .emission.models import LogRecord, MetricPoint
from .emission.sink import EmissionSink
from .errors import RetryCancelled
from .monitoring.health import DEFAULT_UNHEALTHY_THRESHOLD, HealthState, HealthTracker

logger = logging.getLogger(__name__)


class _AdapterRunner:
    """Estado por adapter dentro del controller."""

    def __init__(self, adapter: Adapter, unhealthy_threshold: int):
        self.adapter = adapter
        self.health = HealthTracker(adapter.name, unhealthy_threshold)
        self.lock = threading.Lock()
        self.thread: Optional[threading.Thread] = None
        self.started = False
        self.start_error: Optional[str] = None
        self.ticks = 0
        self.skipped_ticks = 0
        self.coalesced_ticks = 0

    @property
    def name(self) -> str:
        return self.adapter.name

    @property
    def is_running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()


class CollectorController:
    """Orquesta los adapters habilitados y reenvía sus resultados al sink.

    Uso:
        controller = CollectorController(adapters, sink)
        controller.start()
        ...
        controller.stop()
    """

    def __init__(
        self,
        adapters: Sequence[Adapter],
        sink: EmissionSink,
        unhealthy_threshold: int = DEFAULT_UNHEALTHY_THRESHOLD,
    ):
        self._runners: Dict[str, _AdapterRunner] = {}
        for adapter in adapters:
            if adapter.name in self._runners:
                raise ValueError(f"duplicate adapter name '{adapter.name}'")
            self._runners[adapter.name] = _AdapterRunner(adapter, unhealthy_threshold)
        self._sink = sink
        self._cancel = threading.Event()
        self._running = False
        self._state_lock = threading.Lock()

    @property
    def adapter_names(self) -> List[str]:
        return list(self._runners)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def running_adapters(self) -> List[str]:
        return [name for name, r in self._runners.items() if r.is_running]

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def start(self) -> Dict[str, Optional[BaseException]]:
        """Arranca cada adapter y su runner.

        Un adapter que falla en start() se loguea, se registra en su health
        y no se programa; el resto arranca igual.

        Returns:
            Dict nombre → None (arrancado) o la excepción de arranque
        """
        with self._state_lock:
            if self._running:
                logger.warning("[CONTROLLER] Already running")
                return {name: None for name, r in self._runners.items() if r.started}

            self._cancel.clear()
            results: Dict[str, Optional[BaseException]] = {}

            for name, runner in self._runners.items():
                try:
                    runner.adapter.start(self._cancel)
                except Exception as e:
                    runner.start_error = str(e) or type(e).__name__
                    runner.health.record_scrape(0.0, e)
                    results[name] = e
                    logger.error("[CONTROLLER] Adapter start failed adapter=%s err=%s", name, e)
                    continue

                runner.started = True
                runner.start_error = None
                runner.thread = threading.Thread(
                    target=self._run_loop,
                    args=(runner,),
                    name=f"collector-{name}",
                    daemon=True,
                )
                runner.thread.start()
                results[name] = None
                logger.info(
                    "[CONTROLLER] Adapter started adapter=%s interval=%.1fs",
                    name, runner.adapter.collection_interval,
                )

            self._running = True
            started = sum(1 for r in results.values() if r is None)
            logger.info("[CONTROLLER] Started adapters=%d/%d", started, len(self._runners))
            return results

    def _run_loop(self, runner: _AdapterRunner) -> None:
        interval = runner.adapter.collection_interval
        next_at = time.monotonic()

        while not self._cancel.is_set():
            delay = next_at - time.monotonic()
            if delay > 0 and self._cancel.wait(delay):
                break

            self.tick(runner.name)

            next_at += interval
            now = time.monotonic()
            if next_at <= now:
                missed = int((now - next_at) // interval) + 1
                next_at += missed * interval
                runner.coalesced_ticks += missed
                logger.debug("[CONTROLLER] Coalesced missed ticks adapter=%s missed=%d", runner.name, missed)

        logger.debug("[CONTROLLER] Runner exited adapter=%s", runner.name)

    def tick(self, name: str) -> bool:
        """Ejecuta un ciclo de scrape del adapter `name`.

        Returns:
            False si ya había un scrape en curso para ese adapter (se salta)

        Raises:
            KeyError: si el adapter no existe
        """
        runner = self._runners[name]
        if not runner.lock.acquire(blocking=False):
            runner.skipped_ticks += 1
            logger.debug("[CONTROLLER] Scrape in progress, skipping tick adapter=%s", name)
            return False
        try:
            self._tick(runner)
        finally:
            runner.lock.release()
        return True

    def _tick(self, runner: _AdapterRunner) -> None:
        runner.ticks += 1
        metrics: List[MetricPoint] = []
        logs: List[LogRecord] = []

        try:
            result = runner.health.track(lambda: runner.adapter.scrape(self._cancel))
        except RetryCancelled:
            logger.info("[CONTROLLER] Scrape cancelled adapter=%s", runner.name)
        except Exception as e:
            logger.error("[CONTROLLER] Scrape failed adapter=%s err=%s", runner.name, e)
        else:
            metrics.extend(result.metrics)
            logs.extend(result.logs)

        mb = MetricsBuilder()
        runner.health.emit_metrics(mb, datetime.now(timezone.utc))
        metrics.extend(mb.emit())

        self._forward(runner.name, metrics, logs)

    def _forward(self, name: str, metrics: List[MetricPoint], logs: List[LogRecord]) -> None:
        if metrics:
            try:
                self._sink.append_metrics(metrics)
            except Exception as e:
                logger.error("[CONTROLLER] Sink rejected metrics adapter=%s count=%d err=%s", name, len(metrics), e)
        if logs:
            try:
                self._sink.append_logs(logs)
            except Exception as e:
                logger.error("[CONTROLLER] Sink rejected logs adapter=%s count=%d err=%s", name, len(logs), e)

    def stop(self) -> None:
        """Detiene runners y cierra adapters. Idempotente."""
        with self._state_lock:
            self._cancel.set()

            for runner in self._runners.values():
                if runner.thread is not None:
                    runner.thread.join()
                    runner.thread = None

            for runner in self._runners.values():
                if not runner.started:
                    continue
                try:
                    runner.adapter.shutdown()
                except Exception as e:
                    logger.error("[CONTROLLER] Adapter shutdown failed adapter=%s err=%s", runner.name, e)
                runner.started = False

            if self._running:
                logger.info("[CONTROLLER] Stopped. %s", self.stats)
            self._running = False

    def health_snapshot(self) -> Dict[str, HealthState]:
        return {name: r.health.snapshot() for name, r in self._runners.items()}

    @property
    def stats(self) -> dict:
        return {
            name: {
                "running": r.is_running,
                "start_error": r.start_error,
                "ticks": r.ticks,
                "skipped_ticks": r.skipped_ticks,
                "coalesced_ticks": r.coalesced_ticks,
                **r.adapter.stats,
            }
            for name, r in self._runners.items()
        }


# Singleton
_controller: Optional[CollectorController] = None


def get_controller() -> Optional[CollectorController]:
    """Obtiene el controller singleton."""
    return _controller


def set_controller(controller: Optional[CollectorController]) -> None:
    global _controller
    _controller = controller
