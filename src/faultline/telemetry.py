"""Delivery telemetry: timings and outcome counters.

Disabled unless sinks are passed explicitly or ``FAULTLINE_TELEMETRY=1`` is
set when the module is imported. The dispatcher wraps each delivery in a
``faultline.deliver`` scope and bumps ``faultline.outcome.<kind>`` once per
outcome.
"""

from __future__ import annotations

from collections import Counter, deque
from contextlib import AbstractContextManager, contextmanager, nullcontext
import logging
import os
import time
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

_TELEMETRY_ENABLED = os.getenv("FAULTLINE_TELEMETRY") == "1"


@runtime_checkable
class TelemetrySink(Protocol):
    """Receives timings and counter increments."""

    def record_timing(self, scope: str, duration: float, **tags: Any) -> None: ...  # noqa: D102
    def record_count(self, name: str, increment: int, **tags: Any) -> None: ...  # noqa: D102


class _DisabledTelemetry:
    """Shared do-nothing context."""

    __slots__ = ()

    is_enabled = False

    def __call__(self, scope: str, **tags: Any) -> AbstractContextManager[None]:  # noqa: ARG002
        return nullcontext()

    def count(self, name: str, increment: int = 1, **tags: Any) -> None:
        pass


class _SinkTelemetry:
    """Fans timings and counts out to every sink; a failing sink is logged."""

    __slots__ = ("sinks",)

    is_enabled = True

    def __init__(self, *sinks: TelemetrySink) -> None:
        self.sinks = sinks

    def _emit(self, method: str, *args: Any, **tags: Any) -> None:
        for sink in self.sinks:
            try:
                getattr(sink, method)(*args, **tags)
            except Exception as e:
                log.error(
                    "Telemetry sink '%s' failed: %s",
                    type(sink).__name__,
                    e,
                    exc_info=True,
                )

    @contextmanager
    def __call__(self, scope: str, **tags: Any) -> Iterator[None]:
        if not isinstance(scope, str) or not scope:
            raise ValueError("Telemetry scope must be a non-empty string")
        started = time.perf_counter()
        try:
            yield
        finally:
            self._emit("record_timing", scope, time.perf_counter() - started, **tags)

    def count(self, name: str, increment: int = 1, **tags: Any) -> None:
        self._emit("record_count", name, increment, **tags)


_DISABLED = _DisabledTelemetry()

type TelemetryContextProtocol = _SinkTelemetry | _DisabledTelemetry


def TelemetryContext(*sinks: TelemetrySink) -> TelemetryContextProtocol:  # noqa: N802
    """Return the telemetry context for a dispatcher.

    Explicit sinks always enable it. Without sinks, ``FAULTLINE_TELEMETRY=1``
    enables an ``InMemorySink``; otherwise the shared disabled context is
    returned.
    """
    if sinks:
        return _SinkTelemetry(*sinks)
    if _TELEMETRY_ENABLED:
        return _SinkTelemetry(InMemorySink())
    return _DISABLED


class InMemorySink:
    """Keeps the most recent timings per scope and running counter totals."""

    def __init__(self, max_timings_per_scope: int = 1000) -> None:
        self.max_timings = max_timings_per_scope
        self.timings: dict[str, deque[float]] = {}
        self.counts: Counter[str] = Counter()

    def record_timing(self, scope: str, duration: float, **tags: Any) -> None:  # noqa: ARG002
        self.timings.setdefault(scope, deque(maxlen=self.max_timings)).append(duration)

    def record_count(self, name: str, increment: int, **tags: Any) -> None:  # noqa: ARG002
        self.counts[name] += increment

    def reset(self) -> None:
        self.timings.clear()
        self.counts.clear()
