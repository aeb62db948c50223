"""StatsD aggregation table.

Shared between the UDP listener (writer) and scrape (reader). All ingestion
goes through apply(), which holds the write lock for one line only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Tuple

from ...resilience.rwlock import ReadWriteLock
from .parser import KIND_COUNTER, KIND_GAUGE, KIND_TIMER, StatsDSample

logger = logging.getLogger(__name__)

CellKey = Tuple[str, Tuple[Tuple[str, str], ...]]


def cell_key(name: str, tags: Dict[str, str]) -> CellKey:
    return name, tuple(sorted(tags.items()))


@dataclass
class StatsDCell:
    """One aggregation slot, keyed by name plus sorted tags."""

    name: str
    kind: str
    tags: Dict[str, str] = field(default_factory=dict)
    value: float = 0.0
    count: int = 0
    sum: float = 0.0
    min: float = 0.0
    max: float = 0.0

    @property
    def avg(self) -> float:
        return self.sum / self.count if self.count else 0.0


class AggregationTable:
    """Counter/gauge/timer cells behind a reader/writer lock."""

    def __init__(self):
        self._lock = ReadWriteLock()
        self._cells: Dict[CellKey, StatsDCell] = {}
        self.rejected = 0

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._cells)

    def apply(self, sample: StatsDSample) -> bool:
        """Fold one sample into its cell.

        Returns:
            False if the sample conflicts with the cell's fixed kind
        """
        key = cell_key(sample.name, sample.tags)
        with self._lock.write():
            cell = self._cells.get(key)
            if cell is None:
                cell = StatsDCell(name=sample.name, kind=sample.kind, tags=dict(sample.tags))
                self._cells[key] = cell
            elif cell.kind != sample.kind:
                self.rejected += 1
                logger.debug(
                    "STATSD_KIND_CONFLICT name=%s cell=%s sample=%s",
                    sample.name, cell.kind, sample.kind,
                )
                return False

            if sample.kind == KIND_COUNTER:
                cell.value += sample.value / sample.sample_rate
                cell.count += 1
            elif sample.kind == KIND_GAUGE:
                cell.value = sample.value
                cell.count += 1
            elif sample.kind == KIND_TIMER:
                if cell.count == 0:
                    cell.min = sample.value
                    cell.max = sample.value
                else:
                    cell.min = min(cell.min, sample.value)
                    cell.max = max(cell.max, sample.value)
                cell.count += 1
                cell.sum += sample.value
                cell.value = sample.value
            return True

    def get(self, name: str, tags: Dict[str, str] | None = None) -> StatsDCell | None:
        with self._lock.read():
            cell = self._cells.get(cell_key(name, tags or {}))
            return replace(cell, tags=dict(cell.tags)) if cell else None

    def snapshot(self) -> List[StatsDCell]:
        """Copy of every cell, taken under the read lock."""
        with self._lock.read():
            return [replace(c, tags=dict(c.tags)) for c in self._cells.values()]

    def drain(self) -> List[StatsDCell]:
        """Snapshot and reset for delta temporality.

        Counters and timers restart from zero; gauges keep their last value.
        """
        with self._lock.write():
            cells = [replace(c, tags=dict(c.tags)) for c in self._cells.values()]
            for key, cell in list(self._cells.items()):
                if cell.kind == KIND_GAUGE:
                    continue
                del self._cells[key]
            return cells
