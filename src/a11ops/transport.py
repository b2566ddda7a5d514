"""Outbound transport: POST batches of events to the collector over HTTPS.

Wire format:
    POST {endpoint}/alerts/{api_key}
    Content-Type: application/json
    {"events": [<Event.to_payload()>, ...]}

Responses are classified for the pipeline:
    2xx                        → DELIVERED
    5xx, 408, 429, no response → RETRY
    other 4xx                  → TERMINAL (bad credentials, malformed payload)
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import httpx

from a11ops.errors import ConfigurationError
from a11ops.models import SDK_NAME, SDK_VERSION, Event
from a11ops.observability.logging import get_logger

USER_AGENT = f"{SDK_NAME}/{SDK_VERSION}"

_RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


class Outcome(str, Enum):
    DELIVERED = "delivered"
    RETRY = "retry"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class TransportResponse:
    """Result of one transmission attempt. status_code is None when no response arrived."""

    status_code: int | None
    body: str = ""
    error: str | None = None

    @property
    def outcome(self) -> Outcome:
        return classify(self.status_code)


def classify(status_code: int | None) -> Outcome:
    if status_code is None:
        return Outcome.RETRY
    if 200 <= status_code < 300:
        return Outcome.DELIVERED
    if status_code >= 500 or status_code in _RETRYABLE_CLIENT_STATUSES:
        return Outcome.RETRY
    if 400 <= status_code < 500:
        return Outcome.TERMINAL
    # 1xx/3xx: the collector never answers like this; try again later
    return Outcome.RETRY


@runtime_checkable
class Transport(Protocol):
    """Where batches of events are sent."""

    async def send(self, events: Sequence[Event]) -> TransportResponse: ...

    async def aclose(self) -> None: ...


async def check_health(
    endpoint: str,
    timeout: float = 5.0,
    *,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """GET {endpoint}/health. httpx errors propagate to the caller."""
    async with httpx.AsyncClient(
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
        transport=http_transport,
    ) as client:
        response = await client.get(f"{endpoint.rstrip('/')}/health")
        response.raise_for_status()
        try:
            return response.json()
        except ValueError:
            return {"status": response.text}


def encode_batch(events: Sequence[Event]) -> bytes:
    return json.dumps(
        {"events": [event.to_payload() for event in events]}, default=str
    ).encode("utf-8")


class HttpTransport:
    """httpx-backed transport.

    The AsyncClient is created lazily and recreated when the running loop
    changes, so a final flush from a fresh loop (e.g. client.close() at
    exit) still works. The client left behind by the old loop is closed first.
    """

    def __init__(
        self,
        api_key: str | None,
        endpoint: str,
        timeout: float = 10.0,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError(
                "An API key is required. Set A11OPS_API_KEY or pass api_key=..."
            )
        self._api_key = api_key
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None
        self._client_loop: asyncio.AbstractEventLoop | None = None

    @property
    def url(self) -> str:
        return f"{self._endpoint}/alerts/{self._api_key}"

    async def _get_client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        if self._client is not None and self._client_loop is not loop:
            await self._release()
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
                transport=self._http_transport,
            )
            self._client_loop = loop
        return self._client

    async def send(self, events: Sequence[Event]) -> TransportResponse:
        client = await self._get_client()
        try:
            response = await client.post(self.url, content=encode_batch(events))
        except httpx.HTTPError as exc:
            return TransportResponse(status_code=None, error=f"{type(exc).__name__}: {exc}")
        return TransportResponse(status_code=response.status_code, body=response.text)

    async def _release(self) -> None:
        client, self._client, self._client_loop = self._client, None, None
        if client is None:
            return
        try:
            await client.aclose()
        except (RuntimeError, OSError, httpx.HTTPError) as exc:
            # Connections opened on a loop that is already gone
            get_logger("a11ops.transport").debug(
                "transport.client.close_failed", error=f"{type(exc).__name__}: {exc}"
            )

    async def aclose(self) -> None:
        await self._release()
