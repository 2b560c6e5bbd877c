"""
Tenjin Live Session Engine
==========================
Top-level orchestrator for one monitoring session. Owns the lifecycle state,
both histories, the current-metrics projection, the pipeline producers, the
timers and the streaming handle.

States::

    DISCONNECTED ──start()──▶ CONNECTING ──on_open──▶ CONNECTED
         ▲                        │                      │
         │                        └──acquire/open fail──▶ ERROR
         └───────────── stop() / stream closed ──────────┘

Everything runs on one event loop. Asynchronous results (deep-analysis
audits, inbound tool calls, close callbacks) are validated against a
generation counter that moves on every start and stop, so anything that
resolves after the session it belonged to is discarded.
"""

import dataclasses
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from tenjin.core.config import settings
from tenjin.core.exceptions import AcquisitionError
from tenjin.models.schemas import (
    LIVE_SYSTEM_INSTRUCTION,
    REPORT_ERGONOMICS_DECLARATION,
    WellnessAudit,
)
from tenjin.models.session import (
    LiveSessionConfig,
    SessionReport,
    SessionState,
    ToolCallEvent,
    WorkspaceMetric,
    idle_metrics,
)
from tenjin.services.interfaces import (
    DeepAnalysisClient,
    DocumentRenderer,
    MediaCapture,
    NotificationSurface,
    NullPresenter,
    SessionPresenter,
    StreamCallbacks,
    StreamingSession,
    StreamingTransport,
)
from tenjin.services.media_pipeline import (
    AudioEncoder,
    DeepAnalysisSampler,
    FrameSampler,
    OutboundSender,
    PeriodicTimer,
)
from tenjin.services.metric_store import MetricHistoryStore
from tenjin.services.notification_throttle import NotificationThrottle
from tenjin.services.report_synthesizer import synthesize_report
from tenjin.services.scoring import score
from tenjin.services.tool_call_bridge import ToolCallBridge
from tenjin.utils.rounding import round_int
from tenjin.utils.tasks import TaskSupervisor

logger = logging.getLogger("tenjin.session")

ARCHIVED_FEEDBACK = "Session archived."


def default_live_config() -> LiveSessionConfig:
    return LiveSessionConfig(
        system_instruction=LIVE_SYSTEM_INSTRUCTION,
        function_declarations=(REPORT_ERGONOMICS_DECLARATION,),
    )


def elapsed_minutes(now: float, first_timestamp: Optional[float]) -> int:
    """max(1, round(minutes since the first metric)); 1 when there is none."""
    start = now if first_timestamp is None else first_timestamp
    return max(1, round_int((now - start) / 60.0))


class SessionEngine:

    def __init__(
        self,
        transport: StreamingTransport,
        analyzer: DeepAnalysisClient,
        capture: MediaCapture,
        presenter: Optional[SessionPresenter] = None,
        renderer: Optional[DocumentRenderer] = None,
        surfaces: Sequence[NotificationSurface] = (),
        live_config: Optional[LiveSessionConfig] = None,
        clock: Callable[[], float] = time.time,
        frame_interval: float = settings.frame_interval_seconds,
        deep_analysis_interval: float = settings.DEEP_ANALYSIS_INTERVAL_SECONDS,
        cooldown_seconds: float = settings.ALERT_COOLDOWN_SECONDS,
        dismiss_seconds: float = settings.TOAST_DISMISS_SECONDS,
        os_notifications_granted: bool = settings.OS_NOTIFICATIONS_GRANTED,
        praise_threshold: float = settings.GUIDANCE_PRAISE_THRESHOLD,
        outbound_max_pending: int = settings.OUTBOUND_MAX_PENDING,
    ):
        self.transport = transport
        self.analyzer = analyzer
        self.capture = capture
        self.presenter = presenter or NullPresenter()
        self.renderer = renderer or self.presenter
        self.live_config = live_config or default_live_config()
        self.clock = clock
        self.praise_threshold = praise_threshold

        self._state = SessionState.DISCONNECTED
        self._generation = 0
        self._handle: Optional[StreamingSession] = None
        self._metrics = idle_metrics(timestamp=clock())
        self.last_report: Optional[SessionReport] = None

        self.tasks = TaskSupervisor("session")
        self.store = MetricHistoryStore()
        self.throttle = NotificationThrottle(
            presenter=self.presenter,
            surfaces=surfaces,
            supervisor=self.tasks,
            cooldown_seconds=cooldown_seconds,
            dismiss_seconds=dismiss_seconds,
            permission_granted=os_notifications_granted,
            clock=clock,
        )
        self.bridge = ToolCallBridge(
            self.store,
            on_metric=self._on_metric,
            scores=lambda: (self._metrics.current_audit_score, self._metrics.session_avg_score),
            clock=clock,
        )

        self.outbound = OutboundSender(lambda: self._handle, max_pending=outbound_max_pending)
        self.audio_encoder = AudioEncoder(self.outbound)
        self.frame_sampler = FrameSampler(capture, self.outbound)
        self.deep_sampler = DeepAnalysisSampler(
            capture,
            analyzer,
            on_audit=self._on_audit,
            generation=lambda: self._generation,
            supervisor=self.tasks,
        )
        self._frame_timer = PeriodicTimer("frames", frame_interval, self.frame_sampler.tick)
        self._audit_timer = PeriodicTimer("deep-analysis", deep_analysis_interval, self._deep_analysis_tick)

    # ──────────────────────────────────────────────────────
    # Read-only views
    # ──────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def metrics(self) -> WorkspaceMetric:
        return self._metrics

    @property
    def metric_history(self):
        return self.store.metrics

    @property
    def wellness_history(self):
        return self.store.audits

    @property
    def latest_audit(self) -> Optional[WellnessAudit]:
        return self.store.latest_audit

    @property
    def analysis_in_flight(self) -> bool:
        return self.deep_sampler.in_flight

    @property
    def timers_running(self) -> bool:
        return self._frame_timer.running or self._audit_timer.running

    def snapshot(self) -> Dict[str, Any]:
        latest = self.latest_audit
        return {
            "state": self._state.value,
            "metrics": self._metrics.to_dict(),
            "metric_count": len(self.store.metrics),
            "audit_count": len(self.store.audits),
            "latest_audit": latest.model_dump() if latest else None,
            "analysis_in_flight": self.analysis_in_flight,
            "active_notification": self.throttle.active.to_dict() if self.throttle.active else None,
        }

    # ──────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────

    async def start(self) -> SessionState:
        if self._state not in (SessionState.DISCONNECTED, SessionState.ERROR):
            logger.warning("start() ignored in state %s", self._state.value)
            return self._state

        self._generation += 1
        generation = self._generation
        self.store.clear()
        self._set_metrics(idle_metrics(timestamp=self.clock()))
        self._set_state(SessionState.CONNECTING)

        try:
            await self.capture.open()
        except AcquisitionError as exc:
            logger.error("Media acquisition failed: %s", exc)
            if generation == self._generation:
                self._set_state(SessionState.ERROR)
            return self._state

        if generation != self._generation:
            self.capture.release()
            return self._state

        callbacks = StreamCallbacks(
            on_open=lambda: self._on_open(generation),
            on_message=lambda events: self._on_message(generation, events),
            on_close=lambda exc=None: self._on_close(generation, exc),
        )
        try:
            handle = await self.transport.open(self.live_config, callbacks)
        except Exception as exc:
            logger.error("Streaming session failed to open: %s", exc)
            self.capture.release()
            if generation == self._generation:
                self._set_state(SessionState.ERROR)
            return self._state

        if generation != self._generation:
            # stopped while the stream was opening
            await self._close_handle(handle)
            return self._state
        self._handle = handle
        return self._state

    async def stop(self) -> Optional[SessionReport]:
        if self._state is SessionState.DISCONNECTED:
            return None

        logger.info("Stopping session (generation %d)", self._generation)
        self._generation += 1
        self._teardown_media()

        handle, self._handle = self._handle, None
        if handle is not None:
            await self._close_handle(handle)

        now = self.clock()
        total_minutes = elapsed_minutes(now, self.store.first_metric_timestamp)

        report: Optional[SessionReport] = None
        audits = self.store.audits
        if audits:
            report = synthesize_report(
                audits, total_minutes, praise_threshold=self.praise_threshold, generated_at=now,
            )
            self.last_report = report
            try:
                await self.renderer.render(report)
            except Exception as exc:
                logger.error("Report renderer failed: %s", exc)
        else:
            logger.info("No wellness audits recorded, skipping report (%dm session)", total_minutes)

        self.store.clear()
        self.throttle.reset()
        self._set_metrics(idle_metrics(feedback=ARCHIVED_FEEDBACK, timestamp=now))
        self._set_state(SessionState.DISCONNECTED)
        return report

    async def destroy(self) -> None:
        await self.stop()
        self.tasks.cancel_all()
        self.outbound.supervisor.cancel_all()

    # ──────────────────────────────────────────────────────
    # Streaming callbacks
    # ──────────────────────────────────────────────────────

    async def _on_open(self, generation: int) -> None:
        if generation != self._generation or self._state is not SessionState.CONNECTING:
            logger.debug("Stale on_open ignored (generation %d)", generation)
            return
        self._set_state(SessionState.CONNECTED)
        self.audio_encoder.active = True
        self.capture.set_audio_callback(self.audio_encoder.on_audio_block)
        self._frame_timer.start()
        self._audit_timer.start()

    async def _on_message(self, generation: int, events: List[ToolCallEvent]) -> None:
        if generation != self._generation or self._state is not SessionState.CONNECTED:
            return
        await self.bridge.handle(events, self._handle)

    async def _on_close(self, generation: int, exc: Optional[BaseException] = None) -> None:
        if generation != self._generation:
            return
        if self._state not in (SessionState.CONNECTING, SessionState.CONNECTED):
            return
        if exc is not None:
            logger.warning("Streaming session closed with error: %s", exc)
        else:
            logger.info("Streaming session closed by remote")
        self._teardown_media()
        self._handle = None
        self._set_state(SessionState.DISCONNECTED)

    # ──────────────────────────────────────────────────────
    # Inbound results
    # ──────────────────────────────────────────────────────

    def _deep_analysis_tick(self) -> None:
        self.deep_sampler.tick()

    def _on_metric(self, metric: WorkspaceMetric) -> None:
        self._set_metrics(metric)

    async def _on_audit(self, audit: WellnessAudit, generation: int) -> None:
        if generation != self._generation or self._state is not SessionState.CONNECTED:
            logger.info("Discarding deep-analysis result from a finished session")
            return

        self.store.append_audit(audit)
        self.throttle.evaluate(audit)

        current = score(audit)
        average = self.store.session_average()
        self._set_metrics(dataclasses.replace(
            self._metrics, current_audit_score=current, session_avg_score=average,
        ))
        self.tasks.spawn(self.presenter.audit_received(audit), label="audit")
        logger.info("Audit scored %d (session avg %d)", current, average)

    # ──────────────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────────────

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info("Session state %s -> %s", self._state.value, state.value)
        self._state = state
        self.tasks.spawn(self.presenter.state_changed(state), label="state")

    def _set_metrics(self, metrics: WorkspaceMetric) -> None:
        self._metrics = metrics
        self.tasks.spawn(self.presenter.metrics_updated(metrics), label="metrics")

    def _teardown_media(self) -> None:
        self._frame_timer.cancel()
        self._audit_timer.cancel()
        self.audio_encoder.active = False
        self.capture.set_audio_callback(None)
        self.capture.release()

    @staticmethod
    async def _close_handle(handle: StreamingSession) -> None:
        try:
            await handle.close()
        except Exception as exc:
            logger.debug("Stream close failed (ignored): %s", exc)
