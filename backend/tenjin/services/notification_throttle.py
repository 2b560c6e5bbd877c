"""
Tenjin Notification Throttle
============================
Turns deviating wellness audits into user alerts, gated by a cooldown.

  • **Cooldown gate**: an emission within ``cooldown_seconds`` of the last
    one is suppressed outright. Nothing is queued or merged.
  • **Single active toast**: a new emission replaces the visible toast and
    restarts its auto-dismiss timer.
  • **OS-level push**: sent to every notification surface, only when the
    user has granted permission. Surface failures are logged and dropped.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Sequence

from tenjin.core.config import settings
from tenjin.models.schemas import WellnessAudit
from tenjin.models.session import NotificationEvent
from tenjin.services.alert_tone import synthesize_alert_tone
from tenjin.services.interfaces import NotificationSurface, NullPresenter, SessionPresenter
from tenjin.services.scoring import deviations
from tenjin.utils.tasks import TaskSupervisor

logger = logging.getLogger("tenjin.alerts")

ALERT_TITLE = "Tenjin's Vision Alert"


def compose_alert(audit: WellnessAudit) -> Optional[str]:
    """Alert text listing every deviating category, or None when all are ideal."""
    issues = [f"{label}: {status}" for label, status in deviations(audit)]
    if not issues:
        return None
    return f"Anomalies: {', '.join(issues)}. Optimize your setup for health."


class NotificationThrottle:

    def __init__(
        self,
        presenter: Optional[SessionPresenter] = None,
        surfaces: Sequence[NotificationSurface] = (),
        supervisor: Optional[TaskSupervisor] = None,
        cooldown_seconds: float = settings.ALERT_COOLDOWN_SECONDS,
        dismiss_seconds: float = settings.TOAST_DISMISS_SECONDS,
        permission_granted: bool = settings.OS_NOTIFICATIONS_GRANTED,
        tone_sample_rate: int = settings.TONE_SAMPLE_RATE,
        clock: Callable[[], float] = time.time,
    ):
        self.presenter = presenter or NullPresenter()
        self.surfaces: List[NotificationSurface] = list(surfaces)
        self.supervisor = supervisor or TaskSupervisor("alerts")
        self.cooldown_seconds = cooldown_seconds
        self.dismiss_seconds = dismiss_seconds
        self.permission_granted = permission_granted
        self.tone_sample_rate = tone_sample_rate
        self.clock = clock

        self.last_emitted_at: Optional[float] = None
        self.active: Optional[NotificationEvent] = None
        self.emitted_count = 0
        self.suppressed_count = 0
        self._dismiss_handle: Optional[asyncio.TimerHandle] = None
        self._tone: Optional[bytes] = None

    # ──────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────

    def evaluate(self, audit: WellnessAudit) -> Optional[NotificationEvent]:
        message = compose_alert(audit)
        if message is None:
            return None
        return self.emit(ALERT_TITLE, message)

    def emit(self, title: str, message: str) -> Optional[NotificationEvent]:
        now = self.clock()
        if self.last_emitted_at is not None and now - self.last_emitted_at < self.cooldown_seconds:
            self.suppressed_count += 1
            logger.debug(
                "Alert suppressed (%.1fs since last, cooldown %.0fs)",
                now - self.last_emitted_at, self.cooldown_seconds,
            )
            return None

        event = NotificationEvent(title=title, message=message, emitted_at=now)

        if self.permission_granted:
            for surface in self.surfaces:
                self.supervisor.spawn(self._push(surface, event), label="os-notify")

        self._show_toast(event)
        self.supervisor.spawn(
            self.presenter.play_tone(self._alert_tone(), self.tone_sample_rate),
            label="alert-tone",
        )

        self.last_emitted_at = now
        self.emitted_count += 1
        logger.info("Alert emitted: %s", message)
        return event

    def reset(self) -> None:
        """Drop the active toast and forget the cooldown (session boundary)."""
        self._cancel_dismiss()
        if self.active is not None:
            self.active = None
            self.supervisor.spawn(self.presenter.toast_dismissed(), label="toast-dismiss")
        self.last_emitted_at = None

    # ──────────────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────────────

    def _show_toast(self, event: NotificationEvent) -> None:
        self._cancel_dismiss()
        self.active = event
        self.supervisor.spawn(self.presenter.toast_shown(event), label="toast-show")
        loop = asyncio.get_running_loop()
        self._dismiss_handle = loop.call_later(self.dismiss_seconds, self._dismiss)

    def _dismiss(self) -> None:
        self._dismiss_handle = None
        self.active = None
        self.supervisor.spawn(self.presenter.toast_dismissed(), label="toast-dismiss")

    def _cancel_dismiss(self) -> None:
        if self._dismiss_handle is not None:
            self._dismiss_handle.cancel()
            self._dismiss_handle = None

    def _alert_tone(self) -> bytes:
        if self._tone is None:
            self._tone = synthesize_alert_tone(self.tone_sample_rate)
        return self._tone

    @staticmethod
    async def _push(surface: NotificationSurface, event: NotificationEvent) -> None:
        try:
            await surface.notify(event.title, event.message)
        except Exception as exc:
            logger.warning("OS notification failed (%s): %s", type(surface).__name__, exc)
