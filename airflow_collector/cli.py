"""CLI entry point: ejecuta el colector sin servidor HTTP."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import threading

from common.config import load_config

from .emission.sink import LoggingSink
from .errors import ConfigError
from .factory import build_controller

logger = logging.getLogger(__name__)


def main() -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Airflow telemetry collector (REST, DB, StatsD, logs)")
    p.add_argument("--verbose-sink", action="store_true", help="log every emitted point and record")
    p.add_argument("--once", action="store_true", help="run a single scrape per adapter and exit")
    p.add_argument("--serve", action="store_true", help="run the HTTP health service (uvicorn) instead of headless")
    p.add_argument("--host", default=os.getenv("COLLECTOR_HTTP_HOST", "0.0.0.0"))
    p.add_argument("--port", type=int, default=int(os.getenv("COLLECTOR_HTTP_PORT", "8010")))
    args = p.parse_args()

    if args.serve:
        import uvicorn

        # El lifespan de la app construye y arranca el controller.
        uvicorn.run("airflow_collector.main:app", host=args.host, port=args.port)
        return 0

    try:
        controller = build_controller(load_config(), LoggingSink(verbose=args.verbose_sink))
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    if args.once:
        results = controller.start()
        # Si el runner ya está en su primer tick, tick() se salta y stop() espera a que termine.
        for name, err in results.items():
            if err is None:
                controller.tick(name)
        controller.stop()
        return 0 if any(err is None for err in results.values()) else 1

    stop = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("Signal %s received, stopping...", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    results = controller.start()
    if not any(err is None for err in results.values()):
        logger.error("No adapter could be started")
        controller.stop()
        return 1

    logger.info("Airflow collector started adapters=%s", controller.running_adapters)
    stop.wait()
    controller.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
