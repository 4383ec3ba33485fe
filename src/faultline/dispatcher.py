"""Dispatcher: fire-and-forget and synchronous delivery.

All network work runs on one supervised asyncio loop living on a daemon
thread. Each fire-and-forget report becomes its own task there; a failing
task is logged and dropped without touching its siblings or the caller.
The filter and the payload builder run in worker threads, so only the
awaitable POST occupies the loop.
Synchronous calls evaluate the policy in the calling thread and then block on
a single delivery scheduled on the same loop.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import TYPE_CHECKING, Any, TypeVar

from faultline.errors import InternalError
from faultline.outcome import (
    ConfigError,
    ReportOutcome,
    Skipped,
    TransportError,
    outcome_from_transport,
)
from faultline.payload import JsonPayloadBuilder
from faultline.policy import NotificationPolicy
from faultline.stacktrace import STACKTRACE_KEY, with_stacktrace
from faultline.telemetry import TelemetryContext
from faultline.transport import REQUEST_HEADERS, HttpxTransport, network_failure_reason

if TYPE_CHECKING:
    from collections.abc import Coroutine, Mapping, Sequence

    from faultline.config import FrozenConfig
    from faultline.payload import PayloadBuilder
    from faultline.telemetry import TelemetryContextProtocol
    from faultline.transport import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

_THREAD_NAME = "faultline-dispatcher"


def _consume_future_exception(fut: concurrent.futures.Future[Any]) -> None:
    """Avoid 'exception was never retrieved' noise for discarded reports."""
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.debug("Discarded error report failed", exc_info=exc)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.debug(
        "Unhandled error on dispatcher loop: %s",
        context.get("message"),
        exc_info=exc if isinstance(exc, BaseException) else None,
    )


class Dispatcher:
    """Owns the async-vs-sync execution contract for report delivery."""

    def __init__(
        self,
        config: FrozenConfig,
        *,
        policy: NotificationPolicy | None = None,
        builder: PayloadBuilder | None = None,
        transport: Transport | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self.config = config
        self.policy = policy or NotificationPolicy(config)
        self.builder = builder or JsonPayloadBuilder()
        self._owns_transport = transport is None
        self.transport = transport or HttpxTransport(timeout_s=config.timeout_s)
        self._telemetry = telemetry or TelemetryContext()

        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._pending: set[concurrent.futures.Future[Any]] = set()
        self._closed = False

    # --- Supervised loop ---

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        """Return the running dispatcher loop, starting (or restarting) it lazily."""
        with self._lock:
            if self._closed:
                raise InternalError(
                    "Dispatcher has been shut down",
                    hint="Create a new client with faultline.start().",
                )
            loop, thread = self._loop, self._thread
            if loop is not None and thread is not None and thread.is_alive():
                return loop
            if loop is not None:
                logger.warning("Dispatcher loop stopped unexpectedly; restarting")
                if self._owns_transport:
                    # The old client is bound to the dead loop.
                    self.transport = HttpxTransport(timeout_s=self.config.timeout_s)

            loop = asyncio.new_event_loop()
            loop.set_exception_handler(_log_loop_exception)
            ready = threading.Event()
            thread = threading.Thread(
                target=self._run_loop, args=(loop, ready), name=_THREAD_NAME, daemon=True
            )
            thread.start()
            ready.wait()
            self._loop, self._thread = loop, thread
            return loop

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop, ready: threading.Event) -> None:
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        loop.run_forever()

    def _on_loop_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    # --- Pipeline ---

    def should_notify(self, exception: BaseException, stacktrace: Sequence[Any]) -> bool:
        return self.policy.should_notify(exception, stacktrace)

    def _gate(
        self, exception: BaseException, stacktrace: Sequence[Any]
    ) -> ReportOutcome | None:
        """Return a final outcome when nothing should be sent, else None."""
        if not self.policy.should_notify(exception, stacktrace):
            return self._record(Skipped())
        if not self.config.api_key:
            logger.warning("faultline api_key is not configured, error not reported")
            return self._record(ConfigError())
        return None

    async def _send(
        self,
        exception: BaseException,
        stacktrace: Sequence[Any],
        options: Mapping[str, Any],
    ) -> ReportOutcome:
        """Build, POST once, map the result. Never raises (except cancellation)."""
        with self._telemetry("faultline.deliver"):
            try:
                body = await asyncio.to_thread(
                    self.builder.build, exception, stacktrace, options, self.config
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Could not build error report: %s", e)
                return self._record(TransportError(f"payload_failed: {type(e).__name__}"))

            try:
                result = await self.transport.post(
                    self.config.endpoint_url, body, REQUEST_HEADERS
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                return self._record(TransportError(network_failure_reason(e)))

        return self._record(outcome_from_transport(result))

    async def _deliver(
        self, exception: BaseException, options: Mapping[str, Any]
    ) -> ReportOutcome:
        stacktrace = options[STACKTRACE_KEY]
        # Filter runs in a worker thread, never on the loop.
        gated = await asyncio.to_thread(self._gate, exception, stacktrace)
        if gated is not None:
            return gated
        return await self._send(exception, stacktrace, options)

    @property
    def telemetry(self) -> TelemetryContextProtocol:
        """The telemetry context timing deliveries and counting outcomes."""
        return self._telemetry

    def _record(self, outcome: ReportOutcome) -> ReportOutcome:
        self._telemetry.count(f"faultline.outcome.{outcome.kind}")
        return outcome

    # --- Fire-and-forget ---

    def report(self, exception: BaseException, options: Mapping[str, Any] | None = None) -> None:
        """Schedule a report and return immediately.

        The outcome is discarded. Nothing raised while scheduling or
        delivering reaches the caller.
        """
        opts = with_stacktrace(exception, options)
        try:
            self._submit(self._run_isolated(exception, opts))
        except Exception as e:
            logger.warning("Could not schedule error report: %s", e)

    async def _run_isolated(
        self, exception: BaseException, options: Mapping[str, Any]
    ) -> ReportOutcome | None:
        try:
            outcome = await self._deliver(exception, options)
        except Exception:
            logger.debug("Background error report crashed", exc_info=True)
            return None
        logger.debug("Background error report finished: %s", outcome)
        return outcome

    def _submit(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        """Schedule *coro* on the dispatcher loop and track it until done."""
        try:
            loop = self._ensure_loop()
        except InternalError:
            coro.close()
            raise
        fut = asyncio.run_coroutine_threadsafe(coro, loop)
        with self._lock:
            self._pending.add(fut)
        fut.add_done_callback(self._forget)
        return fut

    def _forget(self, fut: concurrent.futures.Future[Any]) -> None:
        with self._lock:
            self._pending.discard(fut)
        _consume_future_exception(fut)

    @property
    def pending(self) -> int:
        """Number of reports still in flight on the dispatcher loop."""
        with self._lock:
            return len(self._pending)

    # --- Synchronous ---

    def sync_report(
        self, exception: BaseException, options: Mapping[str, Any] | None = None
    ) -> ReportOutcome:
        """Deliver a report and block until the single attempt finishes."""
        opts = with_stacktrace(exception, options)
        stacktrace = opts[STACKTRACE_KEY]
        gated = self._gate(exception, stacktrace)
        if gated is not None:
            return gated

        if self._on_loop_thread():
            logger.warning("sync_report called from the dispatcher thread; use report()")
            return self._record(TransportError("reentrant_sync_report"))
        try:
            fut = self._submit(self._send(exception, stacktrace, opts))
        except InternalError as e:
            logger.warning("%s", e)
            return self._record(TransportError("dispatcher_closed"))
        try:
            return fut.result()
        except concurrent.futures.CancelledError:
            return self._record(TransportError("cancelled"))

    async def async_report(
        self, exception: BaseException, options: Mapping[str, Any] | None = None
    ) -> ReportOutcome:
        """Awaitable variant of ``sync_report`` for asyncio callers."""
        opts = with_stacktrace(exception, options)
        stacktrace = opts[STACKTRACE_KEY]
        gated = self._gate(exception, stacktrace)
        if gated is not None:
            return gated

        if self._on_loop_thread():
            return await self._send(exception, stacktrace, opts)
        try:
            fut = self._submit(self._send(exception, stacktrace, opts))
        except InternalError as e:
            logger.warning("%s", e)
            return self._record(TransportError("dispatcher_closed"))
        return await asyncio.wrap_future(fut)

    # --- Lifecycle ---

    def shutdown(self, timeout_s: float | None = 5.0) -> None:
        """Wait for in-flight reports (best-effort), then stop the loop.

        Reports still running after ``timeout_s`` are cancelled.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            loop, thread = self._loop, self._thread
            pending = list(self._pending)
        if loop is None or thread is None or not thread.is_alive():
            self._log_telemetry_summary()
            return

        _, not_done = concurrent.futures.wait(pending, timeout=timeout_s)
        for fut in not_done:
            fut.cancel()
        if not_done:
            logger.warning("Dropped %d unfinished error report(s) on shutdown", len(not_done))

        aclose = getattr(self.transport, "aclose", None)
        if self._owns_transport and callable(aclose):
            try:
                asyncio.run_coroutine_threadsafe(aclose(), loop).result(timeout=timeout_s)
            except Exception as exc:
                logger.warning("Transport cleanup failed: %s", exc)

        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout_s)
        if not thread.is_alive():
            loop.close()
        self._log_telemetry_summary()

    def _log_telemetry_summary(self) -> None:
        for sink in getattr(self._telemetry, "sinks", ()):
            counts = getattr(sink, "counts", None)
            if counts:
                logger.debug("Delivery outcomes at shutdown: %s", dict(counts))
