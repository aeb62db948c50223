"""Logs builder for Airflow event-log rows."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Tuple

from .models import LogRecord

SEVERITY_INFO = 9
SEVERITY_WARN = 13
SEVERITY_ERROR = 17

_SEVERITY_TEXT = {
    SEVERITY_INFO: "INFO",
    SEVERITY_WARN: "WARN",
    SEVERITY_ERROR: "ERROR",
}

# Event name -> severity. Anything not listed is informational.
EVENT_SEVERITY: Dict[str, int] = {
    "failed": SEVERITY_ERROR,
    "failed_task": SEVERITY_ERROR,
    "success": SEVERITY_INFO,
    "success_task": SEVERITY_INFO,
    "running": SEVERITY_INFO,
    "skipped": SEVERITY_WARN,
    "up_for_retry": SEVERITY_WARN,
    "retry": SEVERITY_WARN,
    "up_for_reschedule": SEVERITY_INFO,
}


def severity_for_event(event: Optional[str]) -> Tuple[int, str]:
    number = EVENT_SEVERITY.get(event or "", SEVERITY_INFO)
    return number, _SEVERITY_TEXT[number]


class LogsBuilder:
    """Accumulates LogRecords for a single emission batch."""

    def __init__(self, source: str = "database"):
        self._source = source
        self._records: List[LogRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def record_event_log(
        self,
        timestamp: datetime,
        dag_id: str = "",
        task_id: str = "",
        event: str = "",
        owner: str = "",
        execution_date: Optional[datetime] = None,
        extra: Optional[Mapping[str, str]] = None,
    ) -> LogRecord:
        severity, severity_text = severity_for_event(event)

        attrs: Dict[str, str] = {"airflow.log.source": self._source}
        if dag_id:
            attrs["dag.id"] = dag_id
        if task_id:
            attrs["task.id"] = task_id
        if event:
            attrs["airflow.event"] = event
        if execution_date is not None:
            attrs["execution.date"] = execution_date.isoformat()
        if owner:
            attrs["owner"] = owner
        for key, value in (extra or {}).items():
            attrs[f"extra.{key}"] = value

        record = LogRecord(
            timestamp=timestamp,
            observed_timestamp=datetime.now(timezone.utc),
            severity_number=severity,
            severity_text=severity_text,
            body=f"Airflow event: {event}" if event else "",
            attributes=attrs,
        )
        self._records.append(record)
        return record

    def emit(self) -> List[LogRecord]:
        records, self._records = self._records, []
        return records
