"""Exception hierarchy for faultline.

These are raised for programming and configuration mistakes only. Delivery
problems are never raised; they come back as ``ReportOutcome`` values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class FaultlineError(Exception):
    """Base class; ``hint`` suggests a fix when one is known."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(FaultlineError):
    """Options or ``FAULTLINE_*`` variables failed validation."""


class InternalError(FaultlineError):
    """Misuse of a stopped client, or a broken invariant inside faultline."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* followed by the exceptions it was raised from.

    Follows the same links the interpreter prints: ``__cause__`` when set,
    otherwise ``__context__`` unless suppressed with ``raise ... from None``.
    """
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        yield cur
        if cur.__cause__ is not None:
            cur = cur.__cause__
        elif not cur.__suppress_context__:
            cur = cur.__context__
        else:
            cur = None
