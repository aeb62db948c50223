from .adapter import RestAdapter
from .client import RestApiClient

__all__ = ["RestAdapter", "RestApiClient"]
