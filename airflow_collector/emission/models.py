"""Emission data model: metric points, log records and scrape results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Tuple, Union

DimensionValue = Union[str, bool, int]

KIND_GAUGE = "gauge"
KIND_SUM = "sum"


@dataclass(frozen=True)
class DimensionalRecord:
    """A single measurement with a fixed, ordered set of dimensions."""

    value: float
    unit: str
    dimensions: Tuple[Tuple[str, DimensionValue], ...] = ()

    def dimension(self, key: str) -> DimensionValue | None:
        for k, v in self.dimensions:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class MetricPoint:
    """A named, timestamped, dimensioned numeric point handed to the sink."""

    name: str
    value: float
    timestamp: datetime
    unit: str = ""
    description: str = ""
    kind: str = KIND_GAUGE
    monotonic: bool = False
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LogRecord:
    """A severity-classified text record handed to the sink."""

    timestamp: datetime
    observed_timestamp: datetime
    severity_number: int
    severity_text: str
    body: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class ScrapeResult:
    """Output of one Adapter.scrape() call."""

    metrics: List[MetricPoint] = field(default_factory=list)
    logs: List[LogRecord] = field(default_factory=list)
