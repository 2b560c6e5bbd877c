"""
Tenjin Session Router
=====================
Host-shell glue: one SessionEngine per ``/ws/session`` connection.

Protocol (JSON text frames):

  client → server
    {"type": "start"}                          begin monitoring
    {"type": "stop"}                           end session, produce report
    {"type": "devices", "granted": false}      user denied camera/mic
    {"type": "frame", "data": "<b64 jpeg>"}    latest camera frame
    {"type": "audio", "data": "<b64 f32le>"}   16 kHz mono sample block
    {"type": "ping"}

  server → client
    state, metrics, audit, toast, toast_dismissed, tone, report, pong, error
"""

import base64
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tenjin.core.config import settings
from tenjin.models.schemas import WellnessAudit
from tenjin.models.session import NotificationEvent, SessionReport, SessionState, WorkspaceMetric
from tenjin.services.gemini_audit import GeminiAuditClient
from tenjin.services.gemini_live import GeminiLiveTransport
from tenjin.services.media_capture import CameraCapture, RelayedMediaCapture
from tenjin.services.session_engine import SessionEngine
from tenjin.services.telegram_service import get_telegram_service
from tenjin.services.websocket_manager import ALERTS_CHANNEL, SESSION_CHANNEL, ws_manager
from tenjin.utils.tasks import TaskSupervisor

logger = logging.getLogger("tenjin.session.router")

router = APIRouter(tags=["Session"])


# ══════════════════════════════════════════════════════════
# Presenter: pushes engine output to the connected client
# ══════════════════════════════════════════════════════════

class WebSocketPresenter:
    """SessionPresenter + DocumentRenderer over a single client socket."""

    def __init__(self, websocket: WebSocket, telegram=None):
        self.websocket = websocket
        self.telegram = telegram
        self.closed = False
        self.push_tasks = TaskSupervisor("presenter")

    async def _send(self, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            await self.websocket.send_json(message)
        except Exception as exc:
            self.closed = True
            logger.debug(f"Session client gone, dropping {message.get('type')}: {exc}")

    async def state_changed(self, state: SessionState) -> None:
        await self._send({"type": "state", "data": state.value})

    async def metrics_updated(self, metrics: WorkspaceMetric) -> None:
        await self._send({"type": "metrics", "data": metrics.to_dict()})

    async def audit_received(self, audit: WellnessAudit) -> None:
        await self._send({"type": "audit", "data": audit.model_dump()})

    async def toast_shown(self, event: NotificationEvent) -> None:
        await self._send({"type": "toast", "data": event.to_dict()})
        await ws_manager.send_alert(event)

    async def toast_dismissed(self) -> None:
        await self._send({"type": "toast_dismissed"})

    async def play_tone(self, pcm: bytes, sample_rate: int) -> None:
        await self._send({
            "type": "tone",
            "data": base64.b64encode(pcm).decode("ascii"),
            "mimeType": f"audio/pcm;rate={sample_rate}",
        })

    async def render(self, report: SessionReport) -> None:
        await self._send({"type": "report", "data": report.to_dict()})
        if self.telegram is not None and self.telegram.enabled:
            self.push_tasks.spawn(self.telegram.send_session_summary(report), label="summary")


# ══════════════════════════════════════════════════════════
# Engine factory
# ══════════════════════════════════════════════════════════

def build_capture():
    if settings.CAPTURE_SOURCE == "camera":
        return CameraCapture()
    return RelayedMediaCapture()


def build_session_engine(websocket: WebSocket, capture=None) -> SessionEngine:
    telegram = get_telegram_service()
    presenter = WebSocketPresenter(websocket, telegram=telegram)
    return SessionEngine(
        transport=GeminiLiveTransport(),
        analyzer=GeminiAuditClient(),
        capture=capture or build_capture(),
        presenter=presenter,
        surfaces=[telegram] if telegram.enabled else [],
    )


# ══════════════════════════════════════════════════════════
# REST endpoints
# ══════════════════════════════════════════════════════════

@router.get("/api/session/health")
def session_health():
    """Check whether the remote collaborators are configured"""
    return {
        "gemini_configured": settings.gemini_configured,
        "live_model": settings.LIVE_MODEL,
        "audit_model": settings.AUDIT_MODEL,
        "capture_source": settings.CAPTURE_SOURCE,
        "telegram_enabled": get_telegram_service().enabled,
        "connections": ws_manager.channel_counts(),
    }


# ══════════════════════════════════════════════════════════
# WebSocket endpoints
# ══════════════════════════════════════════════════════════

async def handle_client_message(engine: SessionEngine, capture, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply one client message; returns an immediate reply, if any."""
    msg_type = msg.get("type", "")

    if msg_type == "frame":
        if isinstance(capture, RelayedMediaCapture):
            capture.push_frame(msg.get("data", ""))
        return None

    if msg_type == "audio":
        if isinstance(capture, RelayedMediaCapture):
            capture.push_audio(msg.get("data", ""))
        return None

    if msg_type == "devices":
        if isinstance(capture, RelayedMediaCapture):
            capture.devices_granted = bool(msg.get("granted", True))
        return None

    if msg_type == "start":
        # start() waits for media acquisition, which needs frames from this
        # same socket, so it must not block the receive loop
        engine.tasks.spawn(engine.start(), label="start")
        return {"type": "info", "message": "starting"}

    if msg_type == "stop":
        report = await engine.stop()
        return {"type": "info", "message": "report generated" if report else "session stopped"}

    if msg_type == "ping":
        return {"type": "pong"}

    return {"type": "error", "message": f"unknown message type: {msg_type!r}"}


@router.websocket("/ws/session")
async def websocket_session(websocket: WebSocket):
    """Live monitoring session for one host UI client."""
    await ws_manager.connect(websocket, SESSION_CHANNEL)
    engine = build_session_engine(websocket)
    capture = engine.capture

    if not settings.gemini_configured:
        await websocket.send_json({
            "type": "error",
            "message": "GEMINI_API_KEY is not configured; sessions cannot connect.",
        })

    await websocket.send_json({"type": "state", "data": engine.state.value})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue

            reply = await handle_client_message(engine, capture, msg)
            if reply is not None:
                await websocket.send_json(reply)

    except WebSocketDisconnect:
        logger.info("Session client disconnected (state=%s)", engine.state.value)
    except Exception as e:
        logger.error("Session WS error: %s", e, exc_info=True)
    finally:
        ws_manager.disconnect(websocket, SESSION_CHANNEL)
        if isinstance(engine.presenter, WebSocketPresenter):
            engine.presenter.closed = True
        await engine.destroy()


@router.websocket("/ws/alerts")
async def websocket_alerts(websocket: WebSocket):
    """WebSocket endpoint for real-time alert streaming"""
    await ws_manager.connect(websocket, ALERTS_CHANNEL)
    try:
        while True:
            # Keep connection alive, alerts are pushed via broadcast
            await websocket.receive_text()
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket, ALERTS_CHANNEL)
