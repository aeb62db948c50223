"""Schemas de respuesta de la API REST de Airflow (/api/v1).

Solo los campos que usa el colector; el resto se ignora.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Tag(_ApiModel):
    name: str = ""


class DAG(_ApiModel):
    dag_id: str
    description: Optional[str] = None
    is_paused: bool = False
    is_active: Optional[bool] = None
    tags: List[Tag] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def none_tags(cls, v):
        return v or []


class DAGRun(_ApiModel):
    dag_id: str = ""
    dag_run_id: str = ""
    state: str = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    run_type: str = ""
    external_trigger: bool = False

    @field_validator("dag_run_id", "state", "run_type", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or ""


class TaskInstance(_ApiModel):
    task_id: str = ""
    dag_id: str = ""
    dag_run_id: str = ""
    state: str = ""
    duration: Optional[float] = None
    pool: str = ""
    queue: str = ""
    operator: str = ""
    try_number: int = 0

    @field_validator("task_id", "dag_run_id", "state", "pool", "queue", "operator", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or ""


class Pool(_ApiModel):
    name: str = ""
    slots: int = 0
    occupied_slots: int = 0
    running_slots: int = 0
    queued_slots: int = 0
    open_slots: int = 0
    deferred_slots: int = 0
    scheduled_slots: int = 0
    description: Optional[str] = None


class ComponentStatus(_ApiModel):
    status: Optional[str] = None


class SchedulerStatus(ComponentStatus):
    latest_scheduler_heartbeat: Optional[datetime] = None


class HealthResponse(_ApiModel):
    metadatabase: ComponentStatus = Field(default_factory=ComponentStatus)
    scheduler: SchedulerStatus = Field(default_factory=SchedulerStatus)


class Connection(_ApiModel):
    connection_id: str = ""
    conn_type: Optional[str] = None


class Variable(_ApiModel):
    key: str = ""


class DagImportError(_ApiModel):
    import_error_id: int = 0
    filename: Optional[str] = None
