"""
Tenjin Remote Tool-Call Bridge
==============================
Decodes ``reportErgonomics`` calls pushed by the streaming collaborator
into WorkspaceMetric records and acknowledges them on the same channel.

  • Arguments are validated against ``ErgonomicsReport`` before anything is
    built. A malformed call is logged and dropped, and answered with an
    error so the remote turn does not hang.
  • Metrics are stamped with receipt time, not capture time.
  • Calls to any other function are ignored and left unacknowledged.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from tenjin.core.exceptions import InvalidToolCallError
from tenjin.models.schemas import REPORT_ERGONOMICS, ErgonomicsReport
from tenjin.models.session import Posture, ToolCallEvent, WorkspaceMetric
from tenjin.services.interfaces import StreamingSession
from tenjin.services.metric_store import MetricHistoryStore

logger = logging.getLogger("tenjin.bridge")

ACK_OK = {"result": "ok"}


def decode_metric(
    event: ToolCallEvent,
    timestamp: float,
    scores: Tuple[int, int] = (0, 0),
) -> WorkspaceMetric:
    """Validate tool-call arguments and build a metric; raises InvalidToolCallError."""
    try:
        args = ErgonomicsReport.model_validate(event.args)
    except ValidationError as exc:
        raise InvalidToolCallError(event.name, "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        )) from exc

    current, average = scores
    return WorkspaceMetric(
        posture=Posture(args.posture),
        distance=args.distance,
        blinks_per_minute=args.blinksPerMinute,
        is_focused=args.isFocused,
        is_tired=args.isTired,
        feedback=args.feedback,
        timestamp=timestamp,
        current_audit_score=current,
        session_avg_score=average,
    )


class ToolCallBridge:

    def __init__(
        self,
        store: MetricHistoryStore,
        on_metric: Callable[[WorkspaceMetric], None],
        scores: Callable[[], Tuple[int, int]] = lambda: (0, 0),
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.on_metric = on_metric
        self.scores = scores
        self.clock = clock
        self.rejected_count = 0
        self.ignored_count = 0

    async def handle(self, events: Sequence[ToolCallEvent], session: StreamingSession) -> List[WorkspaceMetric]:
        accepted: List[WorkspaceMetric] = []
        for event in events:
            if event.name != REPORT_ERGONOMICS:
                self.ignored_count += 1
                logger.debug("Ignoring tool call %s (id=%s)", event.name, event.id)
                continue

            try:
                metric = decode_metric(event, self.clock(), self.scores())
            except InvalidToolCallError as exc:
                self.rejected_count += 1
                logger.warning("Dropped tool call id=%s: %s", event.id, exc)
                await self._acknowledge(session, event, {"error": exc.detail})
                continue

            self.store.append_metric(metric)
            self.on_metric(metric)
            await self._acknowledge(session, event, ACK_OK)
            accepted.append(metric)
        return accepted

    @staticmethod
    async def _acknowledge(session: Optional[StreamingSession], event: ToolCallEvent, response: dict) -> None:
        if session is None:
            return
        try:
            await session.send_tool_response(event.id, event.name, response)
        except Exception as exc:
            logger.warning("Tool response for id=%s failed: %s", event.id, exc)
