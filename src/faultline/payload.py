"""Report payload: build and encode the notification body.

The dispatcher treats the builder as opaque. The default implementation
emits a Bugsnag-compatible notification (payload version 2).
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import traceback
from typing import TYPE_CHECKING, Any, Final, Protocol, TypedDict, runtime_checkable

from faultline.errors import _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Sequence

    from faultline.config import FrozenConfig

NOTIFIER_NAME: Final[str] = "faultline"
NOTIFIER_URL: Final[str] = "https://pypi.org/project/faultline/"
PAYLOAD_VERSION: Final[str] = "2"

SEVERITIES: Final[frozenset[str]] = frozenset({"error", "warning", "info"})


class Frame(TypedDict):
    file: str
    lineNumber: int | None
    method: str
    inProject: bool
    code: dict[str, str] | None


@runtime_checkable
class PayloadBuilder(Protocol):
    """Turns an exception + stacktrace + options into an encoded body."""

    def build(
        self,
        exception: BaseException,
        stacktrace: Sequence[Any],
        options: Mapping[str, Any],
        config: FrozenConfig,
    ) -> bytes:
        """Return the request body."""
        ...


def _to_frames(stacktrace: Sequence[Any], in_project: str | None) -> list[Frame]:
    """Convert frames to payload dicts, innermost call first.

    Accepts ``FrameSummary`` objects or ``(file, line, function, text)`` tuples.
    """
    summary = traceback.StackSummary.from_list(list(stacktrace))
    frames: list[Frame] = []
    for fs in reversed(summary):
        code = {str(fs.lineno): fs.line} if fs.line and fs.lineno else None
        frames.append(
            {
                "file": fs.filename,
                "lineNumber": fs.lineno,
                "method": fs.name,
                "inProject": bool(in_project) and fs.filename.startswith(in_project),
                "code": code,
            }
        )
    return frames


def _describe(
    exception: BaseException, stacktrace: Sequence[Any], in_project: str | None
) -> list[dict[str, Any]]:
    """Describe the exception and its cause chain, outermost first."""
    exceptions: list[dict[str, Any]] = []
    for i, exc in enumerate(_walk_exception_chain(exception)):
        if i == 0:
            frames = stacktrace
        elif exc.__traceback__ is not None:
            frames = traceback.extract_tb(exc.__traceback__)
        else:
            frames = []
        exceptions.append(
            {
                "errorClass": type(exc).__qualname__,
                "message": str(exc),
                "stacktrace": _to_frames(frames, in_project),
            }
        )
    return exceptions


class JsonPayloadBuilder:
    """Default builder producing a Bugsnag notification as UTF-8 JSON.

    Recognised options: ``severity``, ``context``, ``user``, ``metadata``,
    ``grouping_hash``. Unknown options are ignored.
    """

    def __init__(self, notifier_version: str | None = None) -> None:
        if notifier_version is None:
            from faultline import __version__

            notifier_version = __version__
        self.notifier_version = notifier_version

    def build_event(
        self,
        exception: BaseException,
        stacktrace: Sequence[Any],
        options: Mapping[str, Any],
        config: FrozenConfig,
    ) -> dict[str, Any]:
        severity = options.get("severity") or "error"
        if severity not in SEVERITIES:
            severity = "error"
        event: dict[str, Any] = {
            "payloadVersion": PAYLOAD_VERSION,
            "exceptions": _describe(exception, stacktrace, config.in_project),
            "severity": severity,
            "app": {
                "releaseStage": config.release_stage,
                "type": config.app_type,
                "version": config.app_version,
            },
            "device": {"hostname": config.hostname},
        }
        if context := options.get("context"):
            event["context"] = str(context)
        if grouping_hash := options.get("grouping_hash"):
            event["groupingHash"] = str(grouping_hash)
        user = options.get("user")
        if isinstance(user, Mapping):
            event["user"] = dict(user)
        metadata = options.get("metadata")
        if isinstance(metadata, Mapping):
            event["metaData"] = dict(metadata)
        return event

    def build(
        self,
        exception: BaseException,
        stacktrace: Sequence[Any],
        options: Mapping[str, Any],
        config: FrozenConfig,
    ) -> bytes:
        notification = {
            "apiKey": config.api_key,
            "notifier": {
                "name": NOTIFIER_NAME,
                "version": self.notifier_version,
                "url": NOTIFIER_URL,
            },
            "events": [self.build_event(exception, stacktrace, options, config)],
        }
        # Metadata is caller-supplied; repr anything json can't handle.
        return json.dumps(notification, default=repr).encode("utf-8")
