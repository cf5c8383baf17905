"""Shared httpx plumbing for the media server adapters."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any

import httpx

from cadence.config import ServerSettings
from cadence.domain.entities import RawRecord
from cadence.domain.exceptions import TransportError
from cadence.domain.ports import ILibraryServerApi

logger = logging.getLogger(__name__)

BatchFetcher = Callable[[int, int], Awaitable[Sequence[RawRecord]]]


class MediaServerClient(ILibraryServerApi):
    """Base class for dialect adapters: lazy client, retries, paging.

    Subclasses implement the ILibraryServerApi methods and call _get_json() for
    every request. Errors the server reports INSIDE a 200 response are the
    subclass's job (_check_payload).
    """

    service_name = "media-server"
    # Largest page a server reliably answers in one request
    max_batch_size = 500

    def __init__(self, settings: ServerSettings) -> None:
        self._settings = settings
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.url,
                headers={
                    "User-Agent": f"{self._settings.client_name}/1.0",
                    "Accept": "application/json",
                },
                timeout=self._settings.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # Hey future me - ALL requests go through here. Connection errors, timeouts and
    # 5xx answers are retried with exponential backoff (retry_backoff, x2 per attempt);
    # 4xx answers are not, asking again won't fix a bad request. Whatever is left
    # over becomes a TransportError, the only exception the sync engine expects
    # from a transport.
    async def _get_json(self, path: str, params: Any) -> dict[str, Any]:
        """GET path and decode the JSON body.

        Args:
            path: Request path relative to the server URL
            params: Query parameters (a list of pairs for repeated keys)

        Returns:
            Decoded JSON object, already checked by _check_payload()

        Raises:
            TransportError: After max_retries attempts, or on a non-retryable failure
        """
        client = await self._get_client()
        attempts = self._settings.max_retries
        delay = self._settings.retry_backoff
        last_error: TransportError | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = await client.get(path, params=params)
            except httpx.HTTPError as e:
                last_error = TransportError(
                    f"Request to {path} failed: {e}", service=self.service_name
                )
            else:
                if response.status_code >= 500:
                    last_error = TransportError(
                        f"{self.service_name} answered {response.status_code} for {path}",
                        service=self.service_name,
                        status_code=response.status_code,
                    )
                elif response.status_code >= 400:
                    raise TransportError(
                        f"{self.service_name} answered {response.status_code} for {path}",
                        service=self.service_name,
                        status_code=response.status_code,
                    )
                else:
                    return self._check_payload(self._decode(response, path))

            if attempt < attempts:
                logger.warning(
                    "%s (attempt %d/%d), retrying in %.1fs",
                    last_error.message,
                    attempt,
                    attempts,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= 2

        assert last_error is not None
        raise last_error

    def _decode(self, response: httpx.Response, path: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(
                f"{self.service_name} sent invalid JSON for {path}",
                service=self.service_name,
                status_code=response.status_code,
            ) from e
        if not isinstance(payload, dict):
            raise TransportError(
                f"{self.service_name} sent an unexpected payload for {path}",
                service=self.service_name,
            )
        return payload

    def _check_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
        return payload

    async def _stream(
        self,
        fetch_batch: BatchFetcher,
        start_index: int,
        page_size: int | None,
    ) -> AsyncIterator[RawRecord]:
        """Yield records from start_index on, batch by batch.

        page_size None streams until the server returns a short batch.
        """
        offset = start_index
        remaining = page_size
        while remaining is None or remaining > 0:
            limit = (
                self.max_batch_size
                if remaining is None
                else min(self.max_batch_size, remaining)
            )
            batch = await fetch_batch(offset, limit)
            for record in batch:
                yield record
            if len(batch) < limit:
                return
            offset += len(batch)
            if remaining is not None:
                remaining -= len(batch)


def window(
    records: Sequence[RawRecord], start_index: int, page_size: int | None
) -> Sequence[RawRecord]:
    """Slice an unpaged listing the way a paged endpoint would answer."""
    if page_size is None:
        return records[start_index:]
    return records[start_index : start_index + page_size]


def as_list(value: Any) -> list[Any]:
    """JSON lists that collapse to one object (or vanish) when they hold one (or none)."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
