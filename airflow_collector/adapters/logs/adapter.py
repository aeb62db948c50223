"""Poller incremental de la tabla `log` de Airflow.

Cada scrape lee una página acotada `id > watermark ORDER BY id ASC` y avanza
el watermark al mayor id leído (una fila con id válido pero contenido
indecodificable se salta y también se consume). El watermark vive solo en memoria:
tras un reinicio se re-emite desde `start_position` (entrega at-least-once).
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine

from ...config import START_LATEST, LogConfig
from ...emission.logs_builder import LogsBuilder
from ...emission.models import ScrapeResult
from ..sql import queries
from ..sql.adapter import DatabaseBackedAdapter

logger = logging.getLogger(__name__)


def _to_datetime(value: Any) -> Optional[datetime]:
    """Normaliza un timestamp de la BD a datetime UTC.

    Raises:
        ValueError: si el valor no es interpretable como timestamp
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise ValueError(f"unsupported timestamp type {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_extra(raw: Any) -> Dict[str, str]:
    """JSON best-effort de la columna `extra`; solo se conservan valores string."""
    if not raw:
        return {}
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(k): v for k, v in data.items() if isinstance(v, str)}


class LogAdapter(DatabaseBackedAdapter):
    """Eventos de la tabla `log` como LogRecords."""

    def __init__(self, cfg: LogConfig, engine: Optional[Engine] = None):
        super().__init__(cfg.database, engine)
        self._cfg = cfg
        self._watermark = 0
        self._skipped_rows = 0
        self._emitted = 0

    @property
    def name(self) -> str:
        return "logs"

    @property
    def collection_interval(self) -> float:
        return self._cfg.collection_interval

    @property
    def watermark(self) -> int:
        return self._watermark

    def start(self, cancel: threading.Event) -> None:
        super().start(cancel)
        if self._cfg.start_position == START_LATEST:
            max_id = self._query("query max log id", queries.get_max_log_id, cancel)
            self._watermark = max_id or 0
        logger.info(
            "[LOGS] Starting start_position=%s watermark=%d",
            self._cfg.start_position, self._watermark,
        )

    def scrape(self, cancel: threading.Event) -> ScrapeResult:
        lb = LogsBuilder(source="database")
        rows = self._query(
            "query logs", queries.fetch_log_page, cancel, self._watermark, self._cfg.page_size,
        )

        for row in rows:
            try:
                row_id = int(row.id)
            except (TypeError, ValueError) as e:
                self._skipped_rows += 1
                logger.warning("[LOGS] Failed to decode log row id=%r err=%s", row.id, e)
                continue

            # Con id válido la fila se da por consumida aunque el resto no se decodifique.
            self._watermark = max(self._watermark, row_id)
            try:
                timestamp = _to_datetime(row.dttm)
                if timestamp is None:
                    raise ValueError("missing dttm")
                execution_date = _to_datetime(row.execution_date)
            except (TypeError, ValueError) as e:
                self._skipped_rows += 1
                logger.warning("[LOGS] Failed to decode log row id=%s err=%s", row_id, e)
                continue

            lb.record_event_log(
                timestamp,
                dag_id=row.dag_id or "",
                task_id=row.task_id or "",
                event=row.event or "",
                owner=row.owner or "",
                execution_date=execution_date,
                extra=parse_extra(row.extra),
            )

        records = lb.emit()
        self._emitted += len(records)
        if records:
            logger.info("[LOGS] Scraped log records count=%d watermark=%d", len(records), self._watermark)
        return ScrapeResult(logs=records)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "watermark": self._watermark,
            "emitted": self._emitted,
            "skipped_rows": self._skipped_rows,
        }
