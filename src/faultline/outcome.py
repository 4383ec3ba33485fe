"""Report outcomes and the transport-result mapping.

Every synchronous delivery ends in exactly one of these values; nothing on
the reporting path is raised to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from faultline.transport import HttpResponse, NetworkFailure

UNKNOWN_REASON = "unknown"


@dataclass(frozen=True)
class Sent:
    """The collector accepted the report (HTTP 200)."""

    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "sent"


@dataclass(frozen=True)
class Skipped:
    """The notification policy declined the report. Not an error."""

    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "skipped"


@dataclass(frozen=True)
class ConfigError:
    """No api key configured; nothing was sent."""

    reason: str = "API key is not configured"

    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "config_error"


@dataclass(frozen=True)
class TransportError:
    """The request never produced an HTTP response."""

    reason: str = UNKNOWN_REASON

    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "transport_error"


@dataclass(frozen=True)
class RemoteRejected:
    """The collector answered with a non-200 status."""

    status_code: int

    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "remote_rejected"

    @property
    def reason(self) -> str:
        return f"status_{self.status_code}"


type ReportOutcome = Sent | Skipped | ConfigError | TransportError | RemoteRejected


def outcome_from_transport(result: Any) -> ReportOutcome:
    """Map whatever the transport returned onto a ReportOutcome.

    Unexpected shapes map to ``TransportError("unknown")``.
    """
    match result:
        case HttpResponse(status_code=200):
            return Sent()
        case HttpResponse(status_code=int() as status):
            return RemoteRejected(status)
        case NetworkFailure(reason=str() as reason) if reason:
            return TransportError(reason)
        case _:
            return TransportError(UNKNOWN_REASON)
