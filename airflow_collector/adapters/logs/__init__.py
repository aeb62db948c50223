from .adapter import LogAdapter, parse_extra

__all__ = ["LogAdapter", "parse_extra"]
