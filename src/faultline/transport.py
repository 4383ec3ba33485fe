"""Transport: POST an encoded report and describe what happened.

Transports never raise for network trouble. They return either an
``HttpResponse`` (the collector answered) or a ``NetworkFailure`` (it did not).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx

from faultline.errors import _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

REQUEST_HEADERS: Mapping[str, str] = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class HttpResponse:
    """The collector answered with an HTTP status."""

    status_code: int


@dataclass(frozen=True)
class NetworkFailure:
    """No HTTP response was received."""

    reason: str


type TransportResult = HttpResponse | NetworkFailure


@runtime_checkable
class Transport(Protocol):
    """Minimal transport protocol: one POST per report."""

    async def post(
        self, url: str, body: bytes, headers: Mapping[str, str]
    ) -> TransportResult:
        """Send *body* to *url* once."""
        ...


def network_failure_reason(exc: BaseException) -> str:
    """Classify a transport-level exception into a short reason string."""
    for e in _walk_exception_chain(exc):
        if isinstance(e, (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError)):
            return "timeout"
        if isinstance(e, httpx.ConnectError):
            return "connect_failed"
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


class HttpxTransport:
    """Default transport backed by ``httpx.AsyncClient``.

    The client is created lazily on first use, so it binds to whichever event
    loop performs the first POST (the dispatcher's loop).
    """

    def __init__(
        self,
        *,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def post(
        self, url: str, body: bytes, headers: Mapping[str, str]
    ) -> TransportResult:
        try:
            response = await self._get_client().post(
                url, content=body, headers=dict(headers)
            )
        except httpx.HTTPError as e:
            return NetworkFailure(network_failure_reason(e))
        return HttpResponse(response.status_code)

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
