"""faultline: exception reporting with stage-aware filtering.

Public API:
    - start(): Resolve configuration once and install the default client
    - report(): Fire-and-forget delivery
    - sync_report(): Blocking delivery returning a ReportOutcome
    - async_report(): Awaitable delivery for asyncio code
    - should_notify(): Policy query
    - stop(): Drain and shut down the default client
    - Client: Explicitly wired client for embedders managing their own lifecycle
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("faultline")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

from faultline.client import Client
from faultline.config import FrozenConfig, resolve_config
from faultline.errors import ConfigurationError, FaultlineError, InternalError
from faultline.outcome import (
    ConfigError,
    RemoteRejected,
    ReportOutcome,
    Sent,
    Skipped,
    TransportError,
)
from faultline.payload import JsonPayloadBuilder, PayloadBuilder
from faultline.policy import ExceptionFilter, NotificationPolicy
from faultline.transport import HttpResponse, HttpxTransport, NetworkFailure, Transport

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("faultline").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)

_default_client: Client | None = None
_default_lock = threading.Lock()

_NOT_STARTED = "faultline has not been started"


def start(overrides: Mapping[str, Any] | None = None, **options: Any) -> Client:
    """Resolve configuration once and install the process-wide default client.

    Calling ``start`` again replaces (and stops) the previous default client.

    Example:
        faultline.start(api_key="...", notify_release_stages="production,staging")
    """
    global _default_client
    client = Client.from_overrides(overrides, **options).start()
    with _default_lock:
        previous, _default_client = _default_client, client
    if previous is not None:
        previous.stop()
    return client


def get_client() -> Client:
    """Return the default client.

    Raises:
        InternalError: If ``start()`` has not been called.
    """
    client = _default_client
    if client is None:
        raise InternalError(
            _NOT_STARTED,
            hint="Call faultline.start() once during application startup.",
        )
    return client


def stop(timeout_s: float | None = 5.0) -> None:
    """Stop and discard the default client, if any."""
    global _default_client
    with _default_lock:
        client, _default_client = _default_client, None
    if client is not None:
        client.stop(timeout_s)


def report(exception: BaseException, options: Mapping[str, Any] | None = None) -> None:
    """Report the exception without waiting for the result (may fail silently)."""
    client = _default_client
    if client is None:
        logger.warning("faultline has not been started, error not reported")
        return
    client.report(exception, options)


def sync_report(
    exception: BaseException, options: Mapping[str, Any] | None = None
) -> ReportOutcome:
    """Report the exception and wait for the outcome."""
    client = _default_client
    if client is None:
        logger.warning("faultline has not been started, error not reported")
        return ConfigError(_NOT_STARTED)
    return client.sync_report(exception, options)


async def async_report(
    exception: BaseException, options: Mapping[str, Any] | None = None
) -> ReportOutcome:
    """Report the exception from async code and await the outcome."""
    client = _default_client
    if client is None:
        logger.warning("faultline has not been started, error not reported")
        return ConfigError(_NOT_STARTED)
    return await client.async_report(exception, options)


def should_notify(exception: BaseException, stacktrace: Sequence[Any]) -> bool:
    """Whether the default client would report this exception.

    Always False before ``start()``: nothing would be sent.
    """
    client = _default_client
    if client is None:
        return False
    return client.should_notify(exception, stacktrace)


__all__ = [
    "Client",
    "ConfigError",
    "ConfigurationError",
    "ExceptionFilter",
    "FaultlineError",
    "FrozenConfig",
    "HttpResponse",
    "HttpxTransport",
    "InternalError",
    "JsonPayloadBuilder",
    "NetworkFailure",
    "NotificationPolicy",
    "PayloadBuilder",
    "RemoteRejected",
    "ReportOutcome",
    "Sent",
    "Skipped",
    "Transport",
    "TransportError",
    "async_report",
    "get_client",
    "report",
    "resolve_config",
    "should_notify",
    "start",
    "stop",
    "sync_report",
]
