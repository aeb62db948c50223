"""Cliente HTTP para la API REST de Airflow.

Cada GET pasa por el RetryExecutor:
- 401/403 → AuthenticationError (no se reintenta)
- 408/429/5xx, timeouts, errores de conexión → TransientError (se reintenta)
- otros 4xx o JSON inválido → NonTransientError
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from ...config import RestApiConfig
from ...errors import AuthenticationError, HttpStatusError, NonTransientError, TransientError
from ...resilience.retry import RetryExecutor

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_RETRYABLE_STATUS = {408, 429}


class RestApiClient:
    """Sesión requests con basic auth, timeout y retry por request."""

    def __init__(self, cfg: RestApiConfig, session: Optional[requests.Session] = None):
        self._cfg = cfg
        self._base_url = cfg.endpoint.rstrip("/")
        self._session = session or requests.Session()
        if cfg.username:
            self._session.auth = (cfg.username, cfg.password)
        self._session.headers.update({"Accept": "application/json"})
        self._retry = RetryExecutor(cfg.retry)
        self._requests = 0

    @property
    def requests_made(self) -> int:
        return self._requests

    def close(self) -> None:
        self._session.close()

    def _get_once(self, path: str, params: Optional[Dict[str, Any]]) -> Any:
        self._requests += 1
        try:
            resp = self._session.get(
                self._base_url + path,
                params=params,
                timeout=self._cfg.timeout,
            )
        except requests.Timeout as e:
            raise TransientError(f"timeout on GET {path}: {e}") from e
        except requests.ConnectionError as e:
            raise TransientError(f"connection error on GET {path}: {e}") from e

        status = resp.status_code
        if status in (401, 403):
            raise AuthenticationError(status, path)
        if status >= 500 or status in _RETRYABLE_STATUS:
            raise TransientError(f"unexpected status code {status} for {path}")
        if status != 200:
            raise HttpStatusError(status, path)

        try:
            return resp.json()
        except ValueError as e:
            raise NonTransientError(f"invalid JSON body for {path}: {e}") from e

    def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Any:
        return self._retry.execute(
            f"GET {path}",
            lambda: self._get_once(path, params),
            cancel=cancel,
        )

    def get_model(
        self,
        path: str,
        model: Type[M],
        cancel: Optional[threading.Event] = None,
    ) -> M:
        body = self.get_json(path, cancel=cancel)
        try:
            return model.model_validate(body)
        except ValidationError as e:
            raise NonTransientError(f"unexpected response shape for {path}: {e}") from e

    def list_paginated(
        self,
        path: str,
        key: str,
        model: Type[M],
        params: Optional[Dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> List[M]:
        """Recorre un listado limit/offset hasta total_entries o página corta.

        Los ítems que no validan contra `model` se descartan con warning.
        """
        limit = self._cfg.page_size
        items: List[M] = []
        offset = 0

        for _ in range(self._cfg.max_pages):
            page_params = dict(params or {})
            page_params.update({"limit": limit, "offset": offset})
            body = self.get_json(path, page_params, cancel=cancel)
            if not isinstance(body, dict):
                raise NonTransientError(f"unexpected response shape for {path}")

            raw_items = body.get(key) or []
            for raw in raw_items:
                try:
                    items.append(model.model_validate(raw))
                except ValidationError as e:
                    logger.warning("[REST] Skipping malformed item path=%s err=%s", path, e)

            offset += len(raw_items)
            total = body.get("total_entries")
            if len(raw_items) < limit:
                break
            if isinstance(total, int) and offset >= total:
                break
        else:
            logger.warning("[REST] Pagination cap reached path=%s pages=%d", path, self._cfg.max_pages)

        return items
