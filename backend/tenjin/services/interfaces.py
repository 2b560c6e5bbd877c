"""
Tenjin Collaborator Interfaces
==============================
The session engine talks to everything outside itself through these
protocols. Concrete adapters live next to this module:

  • ``gemini_live``: StreamingTransport / StreamingSession
  • ``gemini_audit``: DeepAnalysisClient
  • ``media_capture``: MediaCapture
  • ``telegram_service``: NotificationSurface
  • ``routers.session``: SessionPresenter / DocumentRenderer (WebSocket)
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Type

import numpy as np

from tenjin.models.schemas import WellnessAudit
from tenjin.models.session import (
    LiveSessionConfig,
    MediaChunk,
    NotificationEvent,
    SessionReport,
    SessionState,
    ToolCallEvent,
    WorkspaceMetric,
)

AudioCallback = Callable[[np.ndarray], None]


# ── Streaming collaborator ───────────────────────────────

@dataclass
class StreamCallbacks:
    on_open: Callable[[], Awaitable[None]]
    on_message: Callable[[List[ToolCallEvent]], Awaitable[None]]
    on_close: Callable[[Optional[BaseException]], Awaitable[None]]


class StreamingSession(Protocol):
    async def send_realtime_input(self, chunk: MediaChunk) -> None: ...

    async def send_tool_response(self, call_id: Optional[str], name: str, response: Dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class StreamingTransport(Protocol):
    async def open(self, config: LiveSessionConfig, callbacks: StreamCallbacks) -> StreamingSession: ...


# ── Deep-analysis collaborator ───────────────────────────

class DeepAnalysisClient(Protocol):
    async def analyze(self, image: bytes, instruction: str, schema: Type[WellnessAudit]) -> WellnessAudit: ...


# ── Media capture collaborator ───────────────────────────

class MediaCapture(Protocol):
    async def open(self) -> None:
        """Acquire camera and microphone; raise AcquisitionError on failure."""

    def read_frame(self) -> Optional[np.ndarray]: ...

    def set_audio_callback(self, callback: Optional[AudioCallback]) -> None: ...

    def release(self) -> None: ...


# ── Presentation collaborators ───────────────────────────

class NotificationSurface(Protocol):
    async def notify(self, title: str, message: str) -> bool: ...


class DocumentRenderer(Protocol):
    async def render(self, report: SessionReport) -> None: ...


class SessionPresenter(DocumentRenderer, Protocol):
    """Everything the host UI shell shows for a running session."""

    async def state_changed(self, state: SessionState) -> None: ...

    async def metrics_updated(self, metrics: WorkspaceMetric) -> None: ...

    async def audit_received(self, audit: WellnessAudit) -> None: ...

    async def toast_shown(self, event: NotificationEvent) -> None: ...

    async def toast_dismissed(self) -> None: ...

    async def play_tone(self, pcm: bytes, sample_rate: int) -> None: ...


class NullPresenter:
    """Presenter used when no host UI is attached."""

    async def state_changed(self, state: SessionState) -> None:
        pass

    async def metrics_updated(self, metrics: WorkspaceMetric) -> None:
        pass

    async def audit_received(self, audit: WellnessAudit) -> None:
        pass

    async def toast_shown(self, event: NotificationEvent) -> None:
        pass

    async def toast_dismissed(self) -> None:
        pass

    async def play_tone(self, pcm: bytes, sample_rate: int) -> None:
        pass

    async def render(self, report: SessionReport) -> None:
        pass
