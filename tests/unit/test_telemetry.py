"""Telemetry context: disabled by default, fans out to sinks when enabled."""

from __future__ import annotations

import logging

import pytest

from faultline.telemetry import InMemorySink, TelemetryContext, TelemetrySink

pytestmark = pytest.mark.unit


def test_default_context_is_shared_and_disabled():
    ctx = TelemetryContext()

    assert not ctx.is_enabled
    assert ctx is TelemetryContext()
    with ctx("faultline.deliver"):
        ctx.count("faultline.outcome.sent")


def test_scope_records_timing_and_counts_accumulate():
    sink = InMemorySink()
    ctx = TelemetryContext(sink)

    with ctx("faultline.deliver", endpoint="x"):
        ctx.count("faultline.outcome.sent")
        ctx.count("faultline.outcome.sent", 2)

    (duration,) = sink.timings["faultline.deliver"]
    assert duration >= 0
    assert sink.counts == {"faultline.outcome.sent": 3}


def test_every_sink_receives_events():
    first, second = InMemorySink(), InMemorySink()
    ctx = TelemetryContext(first, second)

    ctx.count("faultline.outcome.skipped")

    assert first.counts == second.counts == {"faultline.outcome.skipped": 1}


def test_failing_sink_is_logged_not_raised(caplog):
    class Broken:
        def record_timing(self, scope, duration, **tags):
            raise RuntimeError("down")

        def record_count(self, name, increment, **tags):
            raise RuntimeError("down")

    healthy = InMemorySink()
    ctx = TelemetryContext(Broken(), healthy)

    with caplog.at_level(logging.ERROR, logger="faultline.telemetry"):
        with ctx("scope"):
            ctx.count("counter")

    assert caplog.text.count("Telemetry sink 'Broken' failed") == 2
    assert healthy.counts == {"counter": 1}


def test_scope_timing_is_recorded_when_body_raises():
    sink = InMemorySink()
    ctx = TelemetryContext(sink)

    with pytest.raises(KeyError), ctx("faultline.deliver"):
        raise KeyError("x")

    assert len(sink.timings["faultline.deliver"]) == 1


def test_empty_scope_name_is_rejected():
    ctx = TelemetryContext(InMemorySink())

    with pytest.raises(ValueError), ctx(""):
        pass


def test_timings_are_bounded_per_scope():
    sink = InMemorySink(max_timings_per_scope=2)
    for d in (0.1, 0.2, 0.3):
        sink.record_timing("s", d)

    assert list(sink.timings["s"]) == [0.2, 0.3]

    sink.reset()
    assert sink.timings == {}
    assert not sink.counts


def test_in_memory_sink_satisfies_protocol():
    assert isinstance(InMemorySink(), TelemetrySink)
