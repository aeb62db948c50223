"""StatsD line parser.

Line format: name:value|type[|@sample_rate][|#tag1:val1,tag2:val2]
Malformed lines yield None; the caller drops them one by one.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Optional

KIND_COUNTER = "counter"
KIND_GAUGE = "gauge"
KIND_TIMER = "timer"

_TYPE_TO_KIND = {
    "c": KIND_COUNTER,
    "g": KIND_GAUGE,
    "ms": KIND_TIMER,
    "h": KIND_TIMER,
}


@dataclass(frozen=True)
class StatsDSample:
    """One parsed StatsD line."""

    name: str
    value: float
    kind: str
    sample_rate: float = 1.0
    tags: Dict[str, str] = field(default_factory=dict)


def parse_line(line: str) -> Optional[StatsDSample]:
    parts = line.strip().split("|")
    if len(parts) < 2:
        return None

    name, sep, raw_value = parts[0].partition(":")
    if not sep or not name:
        return None

    try:
        value = float(raw_value)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None

    kind = _TYPE_TO_KIND.get(parts[1].strip())
    if kind is None:
        return None

    sample_rate = 1.0
    tags: Dict[str, str] = {}
    for segment in parts[2:]:
        if segment.startswith("@"):
            try:
                rate = float(segment[1:])
            except ValueError:
                continue
            if rate > 0:
                sample_rate = rate
        elif segment.startswith("#"):
            for pair in segment[1:].split(","):
                key, sep, val = pair.partition(":")
                if sep and key:
                    tags[key] = val

    return StatsDSample(name=name, value=value, kind=kind, sample_rate=sample_rate, tags=tags)
