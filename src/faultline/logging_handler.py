"""Logging hook: report exceptions attached to log records."""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from faultline.dispatcher import Dispatcher

_SEVERITY_BY_LEVEL = (
    (logging.ERROR, "error"),
    (logging.WARNING, "warning"),
)


def _severity(levelno: int) -> str:
    for threshold, severity in _SEVERITY_BY_LEVEL:
        if levelno >= threshold:
            return severity
    return "info"


class ReportingHandler(logging.Handler):
    """Forward log records that carry ``exc_info`` to ``Dispatcher.report``.

    Records from the ``faultline`` logger hierarchy are ignored so a failing
    delivery can never report itself.
    """

    ignored_prefix = "faultline"

    def __init__(self, dispatcher: Dispatcher, level: int = logging.ERROR) -> None:
        super().__init__(level)
        self.dispatcher = dispatcher

    def _is_own(self, record: logging.LogRecord) -> bool:
        name = record.name
        return name == self.ignored_prefix or name.startswith(self.ignored_prefix + ".")

    def emit(self, record: logging.LogRecord) -> None:
        if not record.exc_info or self._is_own(record):
            return
        exception = record.exc_info[1]
        if not isinstance(exception, Exception):
            return
        try:
            options: dict[str, Any] = {
                "severity": _severity(record.levelno),
                "context": record.name,
                "metadata": {
                    "log": {
                        "logger": record.name,
                        "level": record.levelname,
                        "message": record.getMessage(),
                    }
                },
            }
            tb = record.exc_info[2]
            if tb is not None:
                options["stacktrace"] = traceback.extract_tb(tb)
            self.dispatcher.report(exception, options)
        except Exception:
            self.handleError(record)
