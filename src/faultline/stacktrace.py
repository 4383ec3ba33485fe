"""Stacktrace capture helpers."""

from __future__ import annotations

from collections.abc import Mapping
import os
import traceback
from typing import Any

STACKTRACE_KEY = "stacktrace"

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__)) + os.sep


def _is_internal(frame: traceback.FrameSummary) -> bool:
    return os.path.abspath(frame.filename).startswith(_PACKAGE_DIR)


def capture(exception: BaseException | None = None) -> traceback.StackSummary:
    """Return the frames to report for *exception*.

    Prefers the exception's own traceback. Without one (an exception that was
    created but never raised) the current call stack is used, minus the
    innermost frames that belong to faultline itself.
    """
    tb = getattr(exception, "__traceback__", None)
    if tb is not None:
        return traceback.extract_tb(tb)
    stack = list(traceback.extract_stack())
    while stack and _is_internal(stack[-1]):
        stack.pop()
    return traceback.StackSummary.from_list(stack)


def with_stacktrace(
    exception: BaseException, options: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Copy *options*, adding a captured stacktrace unless one is already present."""
    opts = dict(options or {})
    if opts.get(STACKTRACE_KEY) is None:
        opts[STACKTRACE_KEY] = capture(exception)
    return opts
