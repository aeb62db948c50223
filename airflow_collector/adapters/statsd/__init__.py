from .adapter import StatsDAdapter
from .parser import StatsDSample, parse_line
from .table import AggregationTable, StatsDCell

__all__ = [
    "StatsDAdapter",
    "StatsDSample",
    "parse_line",
    "AggregationTable",
    "StatsDCell",
]
