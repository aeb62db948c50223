"""Servicio HTTP del colector.

El lifespan construye el controller desde el entorno, lo arranca y lo detiene
al apagar. Los endpoints solo leen el singleton del controller.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.config import load_config

from . import __version__
from .controller import get_controller, set_controller
from .emission.sink import LoggingSink
from .endpoints.health import router as health_router
from .factory import build_controller

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if get_controller() is None:
        verbose = os.getenv("COLLECTOR_SINK_VERBOSE", "").strip() == "1"
        controller = build_controller(load_config(), LoggingSink(verbose=verbose))
        set_controller(controller)
        controller.start()
        owned = True
    else:
        owned = False
    try:
        yield
    finally:
        if owned:
            controller = get_controller()
            if controller is not None:
                controller.stop()
            set_controller(None)


app = FastAPI(title="Airflow Telemetry Collector", version=__version__, lifespan=lifespan)
app.include_router(health_router)
