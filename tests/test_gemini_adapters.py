"""
Tests for the google-genai adapters (services/gemini_live.py, services/gemini_audit.py).

The genai client is replaced with a namespace exposing only the calls the
adapters make.
"""

import asyncio
import base64
import json
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest

from fakes import IDEAL, make_audit
from tenjin.core.exceptions import AnalysisError, StreamError
from tenjin.models.schemas import WellnessAudit
from tenjin.models.session import MediaChunk
from tenjin.services.gemini_audit import GeminiAuditClient
from tenjin.services.gemini_live import GeminiLiveTransport, build_connect_config, decode_tool_calls
from tenjin.services.interfaces import StreamCallbacks
from tenjin.services.session_engine import default_live_config


def function_call(call_id, name, args):
    return SimpleNamespace(id=call_id, name=name, args=args)


def tool_call_message(*calls):
    return SimpleNamespace(tool_call=SimpleNamespace(function_calls=list(calls)))


class FakeLiveConnection:
    """Each receive() call drains one queued turn; an empty turn ends the socket."""

    def __init__(self, turns):
        self.turns = list(turns)
        self.sent = []
        self.closed = False

    def receive(self):
        turn = self.turns.pop(0) if self.turns else []

        async def messages():
            for message in turn:
                yield message
        return messages()

    async def send_realtime_input(self, **kwargs):
        self.sent.append(kwargs)

    async def send_tool_response(self, **kwargs):
        self.sent.append(kwargs)

    async def close(self):
        self.closed = True


def live_client(connection, fail=None):
    @asynccontextmanager
    async def connect(model, config):
        if fail is not None:
            raise fail
        connect.calls.append({"model": model, "config": config})
        yield connection
    connect.calls = []
    return SimpleNamespace(aio=SimpleNamespace(live=SimpleNamespace(connect=connect)))


class Recorder:

    def __init__(self):
        self.opened = 0
        self.messages = []
        self.closed = asyncio.Event()
        self.close_error = "unset"

    def callbacks(self, on_open=None):
        async def _on_open():
            self.opened += 1
            if on_open is not None:
                await on_open()

        async def _on_message(events):
            self.messages.append(events)

        async def _on_close(exc=None):
            self.close_error = exc
            self.closed.set()

        return StreamCallbacks(on_open=_on_open, on_message=_on_message, on_close=_on_close)


class TestDecodeToolCalls:

    def test_message_without_tool_call(self):
        assert decode_tool_calls(SimpleNamespace(tool_call=None)) == []

    def test_decodes_every_function_call(self):
        events = decode_tool_calls(tool_call_message(
            function_call("a", "reportErgonomics", {"posture": "Good"}),
            function_call("b", "other", None),
        ))
        assert [(e.id, e.name, e.args) for e in events] == [
            ("a", "reportErgonomics", {"posture": "Good"}),
            ("b", "other", {}),
        ]


class TestBuildConnectConfig:

    def test_carries_instruction_tools_and_modalities(self):
        config = build_connect_config(default_live_config())
        assert config["response_modalities"] == ["AUDIO"]
        assert config["tools"][0]["function_declarations"][0]["name"] == "reportErgonomics"
        assert "Neck Posture" in config["system_instruction"]


class TestGeminiLiveTransport:

    @pytest.mark.asyncio
    async def test_missing_api_key_fails_to_open(self):
        transport = GeminiLiveTransport(api_key="")
        with pytest.raises(StreamError):
            await transport.open(default_live_config(), Recorder().callbacks())

    @pytest.mark.asyncio
    async def test_session_lifecycle(self):
        connection = FakeLiveConnection([
            [tool_call_message(function_call("c1", "reportErgonomics", {"posture": "Good"}))],
        ])
        client = live_client(connection)
        recorder = Recorder()
        transport = GeminiLiveTransport(model="live-model", client=client)
        holder = {}

        async def on_open():
            await holder["session"].send_realtime_input(
                MediaChunk(data=base64.b64encode(b"\x01\x02").decode(), mime_type="audio/pcm;rate=16000"),
            )
            await holder["session"].send_realtime_input(
                MediaChunk(data=base64.b64encode(b"\xff\xd8").decode(), mime_type="image/jpeg"),
            )
            await holder["session"].send_tool_response("c0", "reportErgonomics", {"result": "ok"})

        holder["session"] = await transport.open(default_live_config(), recorder.callbacks(on_open))
        await asyncio.wait_for(recorder.closed.wait(), 1.0)

        assert client.aio.live.connect.calls[0]["model"] == "live-model"
        assert recorder.opened == 1
        assert [e.id for e in recorder.messages[0]] == ["c1"]
        assert recorder.close_error is None

        audio, video, ack = connection.sent
        assert audio["audio"].data == b"\x01\x02"
        assert audio["audio"].mime_type == "audio/pcm;rate=16000"
        assert video["video"].mime_type == "image/jpeg"
        assert ack["function_responses"][0].id == "c0"
        assert ack["function_responses"][0].response == {"result": "ok"}

        assert not holder["session"].connected
        with pytest.raises(StreamError):
            await holder["session"].send_realtime_input(MediaChunk(data="", mime_type="image/jpeg"))

    @pytest.mark.asyncio
    async def test_connect_failure_reports_close_with_error(self):
        recorder = Recorder()
        transport = GeminiLiveTransport(client=live_client(None, fail=RuntimeError("handshake refused")))

        await transport.open(default_live_config(), recorder.callbacks())
        await asyncio.wait_for(recorder.closed.wait(), 1.0)

        assert recorder.opened == 0
        assert isinstance(recorder.close_error, RuntimeError)

    @pytest.mark.asyncio
    async def test_local_close_does_not_fire_on_close(self):
        connection = FakeLiveConnection([])

        async def hang():
            await asyncio.Event().wait()
            yield None

        connection.receive = hang
        recorder = Recorder()
        transport = GeminiLiveTransport(client=live_client(connection))

        session = await transport.open(default_live_config(), recorder.callbacks())
        await asyncio.sleep(0.01)
        assert session.connected

        await session.close()
        assert connection.closed
        assert not recorder.closed.is_set()


class TestGeminiAuditClient:

    def make_client(self, text=None, error=None):
        calls = []

        async def generate_content(model, contents, config):
            calls.append({"model": model, "contents": contents, "config": config})
            if error is not None:
                raise error
            return SimpleNamespace(text=text)

        client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))
        return GeminiAuditClient(model="audit-model", client=client), calls

    @pytest.mark.asyncio
    async def test_valid_response(self):
        expected = make_audit(**IDEAL)
        auditor, calls = self.make_client(text=expected.model_dump_json())

        audit = await auditor.analyze(b"\xff\xd8jpeg", "instruction", WellnessAudit)

        assert audit == expected
        assert calls[0]["model"] == "audit-model"
        assert calls[0]["contents"][1] == "instruction"
        assert calls[0]["config"].response_mime_type == "application/json"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_analysis_error(self):
        auditor, _ = self.make_client(error=ConnectionError("reset"))
        with pytest.raises(AnalysisError):
            await auditor.analyze(b"", "instruction", WellnessAudit)

    @pytest.mark.asyncio
    async def test_empty_response_is_rejected(self):
        auditor, _ = self.make_client(text="")
        with pytest.raises(AnalysisError):
            await auditor.analyze(b"", "instruction", WellnessAudit)

    @pytest.mark.asyncio
    async def test_schema_mismatch_is_rejected(self):
        auditor, _ = self.make_client(text=json.dumps({"neckAngle": {"status": "Optimal"}}))
        with pytest.raises(AnalysisError):
            await auditor.analyze(b"", "instruction", WellnessAudit)

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with pytest.raises(AnalysisError):
            await GeminiAuditClient(api_key="").analyze(b"", "instruction", WellnessAudit)
