"""Notify/skip decision: release-stage gate plus a pluggable filter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from faultline.config import FrozenConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class ExceptionFilter(Protocol):
    """Embedder-supplied predicate deciding whether an exception is reported."""

    def should_notify(self, exception: BaseException, stacktrace: Sequence[Any]) -> bool:
        """Return False to drop the report."""
        ...


class NotificationPolicy:
    """Pure decision function over a frozen config.

    The filter runs behind a fail-open boundary: if it raises, the report
    goes through.
    """

    def __init__(self, config: FrozenConfig) -> None:
        self.config = config

    def should_notify(self, exception: BaseException, stacktrace: Sequence[Any]) -> bool:
        if not self.config.reported_stage:
            return False
        return self._test_filter(exception, stacktrace)

    def _test_filter(self, exception: BaseException, stacktrace: Sequence[Any]) -> bool:
        flt = self.config.exception_filter
        if flt is None:
            return True
        predicate = getattr(flt, "should_notify", flt)
        try:
            return bool(predicate(exception, stacktrace))
        except Exception:
            logger.debug(
                "Exception filter %s failed; reporting anyway",
                type(flt).__name__,
                exc_info=True,
            )
            return True
