"""Client facade: one resolved config wired to one dispatcher."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import TYPE_CHECKING, Any, Literal, Self

from faultline.config import resolve_config
from faultline.dispatcher import Dispatcher
from faultline.logging_handler import ReportingHandler

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from faultline.config import FrozenConfig
    from faultline.outcome import ReportOutcome
    from faultline.payload import PayloadBuilder
    from faultline.telemetry import TelemetryContextProtocol
    from faultline.transport import Transport

logger = logging.getLogger(__name__)


class Client:
    """Exception-reporting client.

    Example:
        client = Client.from_overrides(api_key="...", release_stage="staging",
                                       notify_release_stages="production,staging")
        client.start()
        try:
            risky()
        except Exception as exc:
            client.report(exc)
        client.stop()
    """

    def __init__(
        self,
        config: FrozenConfig,
        *,
        builder: PayloadBuilder | None = None,
        transport: Transport | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self.config = config
        self.dispatcher = Dispatcher(
            config, builder=builder, transport=transport, telemetry=telemetry
        )
        self._handler: ReportingHandler | None = None

    @classmethod
    def from_overrides(
        cls,
        overrides: Mapping[str, Any] | None = None,
        *,
        builder: PayloadBuilder | None = None,
        transport: Transport | None = None,
        telemetry: TelemetryContextProtocol | None = None,
        **options: Any,
    ) -> Client:
        """Resolve configuration (overrides > env > defaults) and build a client."""
        config = resolve_config({**(overrides or {}), **options})
        return cls(config, builder=builder, transport=transport, telemetry=telemetry)

    # --- Lifecycle ---

    @property
    def logger_installed(self) -> bool:
        return self._handler is not None

    @property
    def telemetry(self) -> TelemetryContextProtocol:
        """Delivery telemetry; read sinks from ``telemetry.sinks`` when enabled."""
        return self.dispatcher.telemetry

    def start(self) -> Self:
        """Install the logging hook when ``use_logger`` is on."""
        if self.config.use_logger and self._handler is None:
            self._handler = ReportingHandler(self.dispatcher)
            logging.getLogger().addHandler(self._handler)
            logger.debug("Installed faultline logging handler on the root logger")
        return self

    def stop(self, timeout_s: float | None = 5.0) -> None:
        """Remove the logging hook and shut the dispatcher down."""
        if self._handler is not None:
            logging.getLogger().removeHandler(self._handler)
            self._handler = None
        self.dispatcher.shutdown(timeout_s)

    def __enter__(self) -> Self:
        return self.start()

    def __exit__(
        self,
        _: type[BaseException] | None,
        __: BaseException | None,
        ___: TracebackType | None,
    ) -> Literal[False]:
        self.stop()
        return False

    # --- Reporting ---

    def report(self, exception: BaseException, options: Mapping[str, Any] | None = None) -> None:
        """Report without waiting for the result (may fail silently)."""
        self.dispatcher.report(exception, options)

    def sync_report(
        self, exception: BaseException, options: Mapping[str, Any] | None = None
    ) -> ReportOutcome:
        """Report and wait for the result."""
        return self.dispatcher.sync_report(exception, options)

    async def async_report(
        self, exception: BaseException, options: Mapping[str, Any] | None = None
    ) -> ReportOutcome:
        """Report from async code and await the result."""
        return await self.dispatcher.async_report(exception, options)

    def should_notify(self, exception: BaseException, stacktrace: Sequence[Any]) -> bool:
        return self.dispatcher.should_notify(exception, stacktrace)
