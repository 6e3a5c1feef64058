"""HTTP client for the remote authority (health probe + batch upload)."""

from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from ..config import SyncConfig
from ..constants import BATCH_PATH, HEALTH_PATH
from ..errors import IntegrityMismatch, TransportError
from .wire import BatchSyncRequest, BatchSyncResponse


class RemoteAuthority:
    """Blocking client for the authority's ``/sync`` endpoints.

    Every call carries a bounded timeout from :class:`SyncConfig`; a timeout
    surfaces as :class:`TransportError` like any other transport failure.

    Args:
        config: Sync configuration (base URL and timeouts).
        client: Optional pre-built ``httpx.Client`` (tests inject one with a
            ``MockTransport``).  Requests always use absolute URLs built
            from ``config.api_base_url``.
    """

    def __init__(self, config: SyncConfig, client: Optional[httpx.Client] = None) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RemoteAuthority":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return self.config.api_base_url.rstrip("/") + path

    def health(self) -> bool:
        """Return True only for a 2xx ``{"status": "ok"}`` answer.  Never raises."""
        try:
            resp = self._client.get(self._url(HEALTH_PATH), timeout=self.config.health_timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Health probe failed: {}: {}", exc.__class__.__name__, exc)
            return False
        if not resp.is_success:
            logger.debug("Health probe returned HTTP {}", resp.status_code)
            return False
        try:
            body: Any = resp.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("status") == "ok"

    def send_batch(self, request: BatchSyncRequest) -> BatchSyncResponse:
        """Upload one batch and return the parsed verdicts.

        Raises:
            TransportError: connection failure, timeout or non-2xx status.
            IntegrityMismatch: the body is not a valid batch response.
        """
        try:
            resp = self._client.post(
                self._url(BATCH_PATH),
                json=request.model_dump(mode="json"),
                timeout=self.config.batch_timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"Batch upload timed out: {exc}") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(f"Batch upload failed: {exc.__class__.__name__}: {exc}") from exc

        if not resp.is_success:
            raise TransportError(
                f"Batch upload rejected: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise IntegrityMismatch("Batch response is not JSON") from exc
        try:
            return BatchSyncResponse.model_validate(payload)
        except PydanticValidationError as exc:
            raise IntegrityMismatch(f"Malformed batch response: {exc.error_count()} validation error(s)") from exc
