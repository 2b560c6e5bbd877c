"""
Tests for SessionEngine (services/session_engine.py).

Collaborators are fakes; the store, throttle, bridge, samplers and report
synthesizer are the real components.
"""

import asyncio

import numpy as np
import pytest

from fakes import (
    IDEAL,
    VALID_ARGS,
    FakeAnalyzer,
    FakeCapture,
    FakeTransport,
    RecordingPresenter,
    make_audit,
    settle,
)
from tenjin.core.exceptions import StreamError
from tenjin.models.session import SessionState, ToolCallEvent
from tenjin.services.session_engine import ARCHIVED_FEEDBACK, SessionEngine, elapsed_minutes


async def connect(engine, transport):
    await engine.start()
    await transport.fire_open()
    await settle()


def tool_call(call_id="c1", **overrides):
    return ToolCallEvent(id=call_id, name="reportErgonomics", args=dict(VALID_ARGS, **overrides))


class TestElapsedMinutes:

    @pytest.mark.parametrize("seconds,expected", [
        (0, 1),
        (20, 1),
        (90, 2),
        (125, 2),
        (600, 10),
    ])
    def test_rounds_with_floor_of_one(self, seconds, expected):
        assert elapsed_minutes(1000.0 + seconds, 1000.0) == expected

    def test_no_metrics_is_one_minute(self):
        assert elapsed_minutes(1000.0, None) == 1


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_then_open_reaches_connected(self, engine, transport, presenter):
        assert engine.state is SessionState.DISCONNECTED

        state = await engine.start()
        assert state is SessionState.CONNECTING
        assert transport.config.function_declarations[0]["name"] == "reportErgonomics"

        await transport.fire_open()
        await settle()
        assert engine.state is SessionState.CONNECTED
        assert engine.timers_running
        assert presenter.of("state") == [SessionState.CONNECTING, SessionState.CONNECTED]
        await engine.stop()

    @pytest.mark.asyncio
    async def test_acquisition_failure_moves_to_error(self, engine, transport, capture):
        capture.fail = True

        assert await engine.start() is SessionState.ERROR
        assert transport.open_count == 0
        assert not engine.timers_running

    @pytest.mark.asyncio
    async def test_start_is_allowed_again_after_error(self, engine, transport, capture):
        capture.fail = True
        await engine.start()
        capture.fail = False

        assert await engine.start() is SessionState.CONNECTING
        await transport.fire_open()
        assert engine.state is SessionState.CONNECTED
        await engine.stop()

    @pytest.mark.asyncio
    async def test_transport_failure_moves_to_error_and_releases_media(self, engine, transport, capture):
        transport.fail_open = True

        assert await engine.start() is SessionState.ERROR
        assert capture.release_count == 1

    @pytest.mark.asyncio
    async def test_start_while_connected_is_ignored(self, engine, transport):
        await connect(engine, transport)

        assert await engine.start() is SessionState.CONNECTED
        assert transport.open_count == 1
        await engine.stop()

    @pytest.mark.asyncio
    async def test_stop_when_disconnected_is_noop(self, engine, presenter):
        assert await engine.stop() is None
        await settle()
        assert presenter.of("state") == []

    @pytest.mark.asyncio
    async def test_stop_while_connecting_ignores_late_open(self, engine, transport):
        await engine.start()
        await engine.stop()
        await transport.fire_open()

        assert engine.state is SessionState.DISCONNECTED
        assert not engine.timers_running
        assert transport.session.closed

    @pytest.mark.asyncio
    async def test_remote_close_disconnects_without_report(self, engine, transport, capture, presenter):
        await connect(engine, transport)
        await engine.deep_sampler.tick()

        await transport.fire_close(StreamError("socket reset"))
        await settle()

        assert engine.state is SessionState.DISCONNECTED
        assert not engine.timers_running
        assert capture.release_count == 1
        assert presenter.reports == []
        assert await engine.stop() is None

    @pytest.mark.asyncio
    async def test_audio_is_wired_only_while_connected(self, engine, transport, capture):
        await connect(engine, transport)
        assert capture.audio_callback == engine.audio_encoder.on_audio_block

        capture.audio_callback(np.zeros(4096, dtype=np.float32))
        await engine.outbound.supervisor.drain()
        assert transport.session.chunks[-1].mime_type == "audio/pcm;rate=16000"

        await engine.stop()
        assert capture.audio_callback is None
        assert engine.audio_encoder.active is False

    @pytest.mark.asyncio
    async def test_frames_stream_on_the_timer(self, transport, analyzer, capture, presenter, clock):
        engine = SessionEngine(
            transport=transport, analyzer=analyzer, capture=capture, presenter=presenter,
            clock=clock, frame_interval=0.01, deep_analysis_interval=3600.0,
        )
        await connect(engine, transport)
        await asyncio.sleep(0.05)
        await engine.stop()

        frames = [c for c in transport.session.chunks if c.mime_type == "image/jpeg"]
        assert len(frames) >= 2


class TestStreamingInput:

    @pytest.mark.asyncio
    async def test_tool_call_updates_history_and_projection(self, engine, transport, clock, presenter):
        await connect(engine, transport)

        await transport.fire_message([tool_call(feedback="Sit back a little")])
        await settle()

        assert len(engine.metric_history) == 1
        assert engine.metrics.feedback == "Sit back a little"
        assert engine.metrics.timestamp == clock.now
        assert transport.session.tool_responses[0]["response"] == {"result": "ok"}
        assert presenter.of("metrics")[-1] == engine.metrics
        await engine.stop()

    @pytest.mark.asyncio
    async def test_metric_carries_latest_audit_scores(self, engine, transport):
        await connect(engine, transport)
        await engine.deep_sampler.tick()

        await transport.fire_message([tool_call()])

        assert engine.metric_history[-1].current_audit_score == 100
        assert engine.metric_history[-1].session_avg_score == 100
        await engine.stop()

    @pytest.mark.asyncio
    async def test_malformed_tool_call_leaves_history_untouched(self, engine, transport):
        await connect(engine, transport)

        await transport.fire_message([tool_call(isTired="maybe")])

        assert engine.metric_history == ()
        assert "error" in transport.session.tool_responses[0]["response"]
        await engine.stop()

    @pytest.mark.asyncio
    async def test_messages_before_open_are_ignored(self, engine, transport):
        await engine.start()
        await transport.fire_message([tool_call()])
        assert engine.metric_history == ()
        await engine.stop()


class TestDeepAnalysis:

    @pytest.mark.asyncio
    async def test_four_ideal_audits_keep_full_marks(self, engine, transport):
        await connect(engine, transport)

        for _ in range(4):
            await engine.deep_sampler.tick()
            assert engine.metrics.current_audit_score == 100
            assert engine.metrics.session_avg_score == 100

        assert len(engine.wellness_history) == 4
        await engine.stop()

    @pytest.mark.asyncio
    async def test_average_tracks_all_audits(self, engine, transport, analyzer):
        analyzer.results = [
            make_audit(**IDEAL),
            make_audit(neck="Optimal", distance="Close", blinking="Slow", focus="Tilted Away"),
        ]
        await connect(engine, transport)

        await engine.deep_sampler.tick()
        await engine.deep_sampler.tick()

        assert engine.metrics.current_audit_score == 45
        assert engine.metrics.session_avg_score == 73
        await engine.stop()

    @pytest.mark.asyncio
    async def test_deviation_raises_one_alert_per_cooldown(self, engine, transport, analyzer, presenter, surface, clock):
        analyzer.results = [make_audit(neck="Poor"), make_audit(neck="Poor"), make_audit(neck="Poor")]
        await connect(engine, transport)

        await engine.deep_sampler.tick()
        clock.advance(10)
        await engine.deep_sampler.tick()
        clock.advance(25)
        await engine.deep_sampler.tick()
        await settle()

        assert len(presenter.of("toast")) == 2
        assert len(surface.sent) == 2
        assert surface.sent[0][1].startswith("Anomalies: Neck: Poor")
        await engine.stop()

    @pytest.mark.asyncio
    async def test_analysis_failure_is_not_fatal(self, engine, transport, analyzer):
        analyzer.results = [StreamError("quota"), make_audit(**IDEAL)]
        await connect(engine, transport)

        await engine.deep_sampler.tick()
        assert engine.state is SessionState.CONNECTED
        assert engine.wellness_history == ()

        await engine.deep_sampler.tick()
        assert len(engine.wellness_history) == 1
        await engine.stop()

    @pytest.mark.asyncio
    async def test_late_audit_after_stop_is_discarded(self, engine, transport, analyzer, presenter):
        analyzer.gate = asyncio.Event()
        await connect(engine, transport)

        pending = engine.deep_sampler.tick()
        await settle()
        assert engine.analysis_in_flight

        assert await engine.stop() is None
        analyzer.gate.set()
        await pending
        await settle()

        assert engine.wellness_history == ()
        assert presenter.of("audit") == []
        assert not engine.analysis_in_flight

    @pytest.mark.asyncio
    async def test_late_audit_does_not_leak_into_next_session(self, engine, transport, analyzer):
        analyzer.gate = asyncio.Event()
        await connect(engine, transport)
        pending = engine.deep_sampler.tick()
        await settle()
        await engine.stop()

        transport.session = type(transport.session)()
        await connect(engine, transport)
        analyzer.gate.set()
        await pending

        assert engine.state is SessionState.CONNECTED
        assert engine.wellness_history == ()
        await engine.stop()


class TestStopAndReport:

    @pytest.mark.asyncio
    async def test_stop_without_audits_skips_report(self, engine, transport, presenter):
        await connect(engine, transport)
        await transport.fire_message([tool_call()])

        assert await engine.stop() is None
        await settle()

        assert presenter.reports == []
        assert engine.state is SessionState.DISCONNECTED
        assert engine.metric_history == ()
        assert engine.metrics.feedback == ARCHIVED_FEEDBACK
        assert transport.session.closed

    @pytest.mark.asyncio
    async def test_report_duration_rounds_minutes(self, engine, transport, clock, presenter):
        await connect(engine, transport)
        await transport.fire_message([tool_call()])
        await engine.deep_sampler.tick()
        clock.advance(125)

        report = await engine.stop()

        assert report.total_minutes == 2
        assert report.total_audits == 1
        assert report.overall_score_percent == 100
        assert presenter.reports == [report]
        assert engine.last_report is report

    @pytest.mark.asyncio
    async def test_report_without_metrics_counts_one_minute(self, engine, transport):
        await connect(engine, transport)
        await engine.deep_sampler.tick()

        report = await engine.stop()
        assert report.total_minutes == 1

    @pytest.mark.asyncio
    async def test_stop_resets_everything(self, engine, transport, analyzer, capture, presenter):
        analyzer.results = [make_audit(focus="Distracted")]
        await connect(engine, transport)
        await transport.fire_message([tool_call()])
        await engine.deep_sampler.tick()
        assert engine.throttle.active is not None

        await engine.stop()
        await settle()

        assert engine.metric_history == ()
        assert engine.wellness_history == ()
        assert engine.latest_audit is None
        assert engine.throttle.active is None
        assert engine.throttle.last_emitted_at is None
        assert not engine.timers_running
        assert capture.release_count == 1
        assert presenter.of("state")[-1] is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_renderer_failure_still_disconnects(self, transport, analyzer, capture, clock):
        class BrokenRenderer:
            async def render(self, report):
                raise IOError("disk full")

        engine = SessionEngine(
            transport=transport, analyzer=analyzer, capture=capture,
            presenter=RecordingPresenter(), renderer=BrokenRenderer(), clock=clock,
            frame_interval=3600.0, deep_analysis_interval=3600.0,
        )
        await connect(engine, transport)
        await engine.deep_sampler.tick()

        report = await engine.stop()
        assert report is not None
        assert engine.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_close_failure_is_ignored(self, engine, transport):
        transport.session.fail_close = True
        await connect(engine, transport)

        await engine.stop()
        assert engine.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_new_session_starts_clean(self, engine, transport):
        await connect(engine, transport)
        await transport.fire_message([tool_call()])
        await engine.deep_sampler.tick()
        await engine.stop()

        await connect(engine, transport)
        assert engine.metric_history == ()
        assert engine.wellness_history == ()
        assert engine.metrics.current_audit_score == 0
        await engine.stop()


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_snapshot_reflects_session(self, engine, transport):
        await connect(engine, transport)
        await transport.fire_message([tool_call()])
        await engine.deep_sampler.tick()

        snap = engine.snapshot()
        assert snap["state"] == "CONNECTED"
        assert snap["metric_count"] == 1
        assert snap["audit_count"] == 1
        assert snap["latest_audit"]["neckAngle"]["status"] == "Optimal"
        assert snap["metrics"]["currentAuditScore"] == 100
        assert snap["active_notification"] is None
        await engine.destroy()


class TestDestroy:

    @pytest.mark.asyncio
    async def test_destroy_stops_and_cancels(self):
        transport = FakeTransport()
        engine = SessionEngine(
            transport=transport, analyzer=FakeAnalyzer(), capture=FakeCapture(),
            frame_interval=3600.0, deep_analysis_interval=3600.0,
        )
        await connect(engine, transport)
        await engine.destroy()

        assert engine.state is SessionState.DISCONNECTED
        assert not engine.timers_running
        assert transport.session.closed
