"""Construye los adapters habilitados a partir de CollectorConfig."""

from __future__ import annotations

import logging
from typing import List

from .adapters.base import Adapter
from .adapters.logs import LogAdapter
from .adapters.rest import RestAdapter
from .adapters.sql import SqlAdapter
from .adapters.statsd import StatsDAdapter
from .config import CollectorConfig
from .controller import CollectorController
from .emission.sink import EmissionSink

logger = logging.getLogger(__name__)


def build_adapters(cfg: CollectorConfig) -> List[Adapter]:
    """Instancia un adapter por modo habilitado.

    Args:
        cfg: Configuración ya validada (CollectorConfig.validate())

    Returns:
        Lista de adapters, sin arrancar
    """
    adapters: List[Adapter] = []
    if cfg.modes.rest_api:
        adapters.append(RestAdapter(cfg.rest_api))
    if cfg.modes.database:
        adapters.append(SqlAdapter(cfg.database))
    if cfg.modes.statsd:
        adapters.append(StatsDAdapter(cfg.statsd))
    if cfg.modes.logs:
        adapters.append(LogAdapter(cfg.logs))

    logger.info("[FACTORY] Built adapters=%s", [a.name for a in adapters])
    return adapters


def build_controller(cfg: CollectorConfig, sink: EmissionSink) -> CollectorController:
    cfg = cfg.validate()
    return CollectorController(build_adapters(cfg), sink, unhealthy_threshold=cfg.unhealthy_threshold)
