"""Async persistence calls for board reordering using httpx.

Two requests make up the contract:

- bulk position write: ``PUT {base}/views/{view_id}/item-positions`` with the
  ``BulkPositionRequest`` payload; the body of a 2xx answer lists the
  confirmed ``{itemId, groupId, position}`` tuples (possibly renumbered by
  the server). An empty body confirms the request as sent.
- group/status update: ``PATCH {base}/items/{item_id}``, issued on its own
  for cross-group moves.

Transport errors and timeouts are retried with exponential backoff; HTTP
error statuses are not retried. Both surface as ``NetworkFailure``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx

from board.reorder.errors import NetworkFailure
from config import settings
from domain.models import BulkPositionRequest, BulkPositionResponse

__all__ = ["PositionTransport", "HttpPositionTransport"]

log = logging.getLogger(__name__)


class PositionTransport(Protocol):
    async def put_positions(self, request: BulkPositionRequest) -> BulkPositionResponse: ...

    async def update_group(self, item_id: str, group_id: str) -> None: ...


class HttpPositionTransport:
    def __init__(
        self,
        view_id: str,
        *,
        base_url: str = settings.API_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        retries: int | None = None,
        backoff: float = settings.DEFAULT_BACKOFF_FACTOR,
    ) -> None:
        self.view_id = view_id
        self._base_url = base_url.rstrip("/")
        self._retries = retries if retries is not None else settings.DEFAULT_RETRIES
        self._backoff = backoff
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": settings.DEFAULT_USER_AGENT},
            timeout=settings.DEFAULT_TIMEOUT,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpPositionTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    async def put_positions(self, request: BulkPositionRequest) -> BulkPositionResponse:
        url = f"{self._base_url}/views/{self.view_id}/item-positions"
        resp = await self._send("PUT", url, request.to_payload())
        if not resp.content:
            return BulkPositionResponse(
                items=request.items, sequence=request.sequence, batch_id=request.batch_id
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkFailure(
                "invalid position response", context={"url": url, "batch_id": request.batch_id}
            ) from e
        response = BulkPositionResponse.from_payload(data)
        if response.sequence is None:
            # servers that do not echo the tag answer for the request they were sent
            response = BulkPositionResponse(
                items=response.items or request.items,
                sequence=request.sequence,
                batch_id=response.batch_id or request.batch_id,
                error=response.error,
            )
        return response

    async def update_group(self, item_id: str, group_id: str) -> None:
        url = f"{self._base_url}/items/{item_id}"
        await self._send("PATCH", url, {"groupId": group_id, "skipInvalidate": True})

    # ------------------------------------------------------------------
    async def _send(self, method: str, url: str, payload: dict[str, Any]) -> httpx.Response:
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = await self._client.request(method, url, json=payload)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                raise NetworkFailure(
                    f"{method} {url} failed with status {e.response.status_code}",
                    context={"status": e.response.status_code},
                ) from e
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if attempt > self._retries:
                    raise NetworkFailure(
                        f"{method} {url} failed after {attempt} attempts: {e}",
                        context={"attempts": attempt},
                    ) from e
                log.debug("retrying %s %s after %s", method, url, e)
                await asyncio.sleep(self._backoff * (2 ** (attempt - 1)))
