"""
Tenjin Gemini Live Adapter
Streaming collaborator over the google-genai live API.

``open()`` returns the session handle immediately and runs the connection
in a background task: the ``on_open`` callback fires once the socket is up,
inbound tool calls are decoded into ToolCallEvents, and ``on_close`` fires
when the remote side ends the session or the connection fails.
"""

import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from tenjin.core.config import settings
from tenjin.core.exceptions import StreamError
from tenjin.models.session import LiveSessionConfig, MediaChunk, ToolCallEvent
from tenjin.services.interfaces import StreamCallbacks

logger = logging.getLogger("tenjin.gemini.live")


def decode_tool_calls(message: Any) -> List[ToolCallEvent]:
    """Pull function calls out of a LiveServerMessage (empty list if none)."""
    tool_call = getattr(message, "tool_call", None)
    if tool_call is None:
        return []
    events = []
    for fc in tool_call.function_calls or []:
        args = fc.args if isinstance(fc.args, dict) else (fc.args or {})
        events.append(ToolCallEvent(id=fc.id, name=fc.name or "", args=args))
    return events


def build_connect_config(config: LiveSessionConfig) -> Dict[str, Any]:
    return {
        "response_modalities": list(config.response_modalities),
        "tools": [{"function_declarations": list(config.function_declarations)}],
        "system_instruction": config.system_instruction,
    }


class GeminiLiveSession:
    """Handle for one live connection (StreamingSession)."""

    def __init__(self, client: genai.Client, model: str, config: LiveSessionConfig, callbacks: StreamCallbacks):
        self._client = client
        self._model = model
        self._config = config
        self._callbacks = callbacks
        self._session = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._session is not None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run(), name="gemini-live")

    async def _run(self) -> None:
        error: Optional[BaseException] = None
        try:
            async with self._client.aio.live.connect(
                model=self._model, config=build_connect_config(self._config),
            ) as session:
                self._session = session
                logger.info("Live session open (model=%s)", self._model)
                await self._callbacks.on_open()
                # receive() ends after each model turn; keep listening until closed
                while not self._closing:
                    received = 0
                    async for message in session.receive():
                        received += 1
                        events = decode_tool_calls(message)
                        if events:
                            await self._callbacks.on_message(events)
                    if received == 0:
                        break  # remote closed the socket
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = exc
            logger.warning("Live session error: %s", exc)
        finally:
            self._session = None
            if not self._closing:
                await self._callbacks.on_close(error)

    async def send_realtime_input(self, chunk: MediaChunk) -> None:
        if self._session is None:
            raise StreamError("live session is not connected")
        blob = types.Blob(data=base64.b64decode(chunk.data), mime_type=chunk.mime_type)
        if chunk.mime_type.startswith("audio/"):
            await self._session.send_realtime_input(audio=blob)
        else:
            await self._session.send_realtime_input(video=blob)

    async def send_tool_response(self, call_id: Optional[str], name: str, response: Dict[str, Any]) -> None:
        if self._session is None:
            raise StreamError("live session is not connected")
        await self._session.send_tool_response(
            function_responses=[types.FunctionResponse(id=call_id, name=name, response=response)],
        )

    async def close(self) -> None:
        self._closing = True
        session, self._session = self._session, None
        try:
            if session is not None:
                await session.close()
        finally:
            if self._task is not None and not self._task.done():
                self._task.cancel()
                await asyncio.gather(self._task, return_exceptions=True)
            logger.info("Live session closed")


class GeminiLiveTransport:
    """StreamingTransport backed by google-genai."""

    def __init__(self, api_key: str = settings.GEMINI_API_KEY, model: str = settings.LIVE_MODEL,
                 client: Optional[genai.Client] = None):
        self.model = model
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise StreamError("GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def open(self, config: LiveSessionConfig, callbacks: StreamCallbacks) -> GeminiLiveSession:
        session = GeminiLiveSession(self._get_client(), self.model, config, callbacks)
        session.start()
        return session
