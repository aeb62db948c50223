from .adapter import DatabaseBackedAdapter, SqlAdapter, is_transient_db_error

__all__ = ["DatabaseBackedAdapter", "SqlAdapter", "is_transient_db_error"]
