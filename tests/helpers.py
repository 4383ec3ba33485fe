"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: transports, filters and builders that
record what they were asked to do.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import threading
import time
from typing import Any

from faultline.transport import HttpResponse


@dataclass
class RecordingTransport:
    """Transport spy returning scripted results.

    ``script`` items may be results (returned) or exceptions (raised). Once the
    script is exhausted every call returns ``default``.
    """

    script: list[Any] = field(default_factory=list)
    default: Any = field(default_factory=lambda: HttpResponse(200))
    delay_s: float = 0.0
    calls: list[dict[str, Any]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    async def post(self, url: str, body: bytes, headers: Any) -> Any:
        with self._lock:
            self.calls.append({"url": url, "body": body, "headers": dict(headers)})
            item = self.script.pop(0) if self.script else self.default
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)


@dataclass
class RecordingFilter:
    """ExceptionFilter that records its arguments and returns ``verdict``."""

    verdict: bool = True
    seen: list[tuple[BaseException, Any]] = field(default_factory=list)

    def should_notify(self, exception: BaseException, stacktrace: Any) -> bool:
        self.seen.append((exception, stacktrace))
        return self.verdict


class RaisingFilter:
    """ExceptionFilter that fails on every call."""

    def __init__(self) -> None:
        self.calls = 0

    def should_notify(self, exception: BaseException, stacktrace: Any) -> bool:
        self.calls += 1
        raise RuntimeError("filter exploded")


class ExplodingBuilder:
    """PayloadBuilder that cannot encode anything."""

    def build(self, exception: Any, stacktrace: Any, options: Any, config: Any) -> bytes:
        raise ValueError("cannot encode")


def raised(exc: BaseException) -> BaseException:
    """Return *exc* after raising it, so it carries a traceback."""
    try:
        raise exc
    except BaseException as e:
        return e


class SlowFilter:
    """ExceptionFilter that blocks for ``delay_s`` on ``slow_for`` exceptions."""

    def __init__(self, delay_s: float, slow_for: type[BaseException] = Exception) -> None:
        self.delay_s = delay_s
        self.slow_for = slow_for

    def should_notify(self, exception: BaseException, stacktrace: Any) -> bool:
        if isinstance(exception, self.slow_for):
            time.sleep(self.delay_s)
        return True
