"""
Tenjin Streaming Media Pipeline
===============================
Producers that feed the remote collaborators while a session is connected:

  • ``AudioEncoder``: PCM16 chunks, driven by the capture callback
  • ``FrameSampler``: routine JPEG frames on a fixed 2 Hz timer
  • ``DeepAnalysisSampler``: high-quality frame every 10 s, at most one
    deep-analysis call outstanding

Every outbound send is fire-and-forget through a bounded supervisor, so a
slow or failing collaborator never blocks the event loop.
"""

import asyncio
import base64
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

import cv2
import numpy as np

from tenjin.core.config import settings
from tenjin.core.exceptions import AnalysisError
from tenjin.models.schemas import AUDIT_INSTRUCTION, WellnessAudit
from tenjin.models.session import MediaChunk
from tenjin.services.interfaces import DeepAnalysisClient, MediaCapture, StreamingSession
from tenjin.utils.tasks import TaskSupervisor

logger = logging.getLogger("tenjin.pipeline")

JPEG_MIME = "image/jpeg"


def pcm_mime(sample_rate: int = settings.AUDIO_SAMPLE_RATE) -> str:
    return f"audio/pcm;rate={sample_rate}"


# ─────────────────────────────────────────────────────────
# Encoders
# ─────────────────────────────────────────────────────────

def encode_pcm16(samples: np.ndarray) -> bytes:
    """
    Float samples in [-1.0, 1.0] -> little-endian int16 bytes.

    Samples are scaled by 32768 and truncated toward zero. There is no
    clamping: 1.0 becomes 32768 and wraps to -32768, and anything further
    out of range wraps modulo 2**16.
    """
    scaled = np.trunc(np.asarray(samples, dtype=np.float64) * 32768.0)
    wrapped = (scaled.astype(np.int64) & 0xFFFF).astype(np.uint16).view(np.int16)
    return wrapped.astype("<i2").tobytes()


def encode_jpeg(frame: np.ndarray, quality: int) -> Optional[bytes]:
    """OpenCV JPEG encode; quality on the 0-100 scale."""
    ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        return None
    return buffer.tobytes()


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# ─────────────────────────────────────────────────────────
# Outbound dispatch
# ─────────────────────────────────────────────────────────

class OutboundSender:
    """Bounded fire-and-forget sends to the streaming session."""

    def __init__(
        self,
        session_getter: Callable[[], Optional[StreamingSession]],
        max_pending: int = settings.OUTBOUND_MAX_PENDING,
    ):
        self._session_getter = session_getter
        self.supervisor = TaskSupervisor("outbound", max_pending=max_pending)
        self.sent = 0

    def send(self, chunk: MediaChunk) -> bool:
        session = self._session_getter()
        if session is None:
            return False
        task = self.supervisor.spawn(self._send(session, chunk), label=chunk.mime_type)
        return task is not None

    async def _send(self, session: StreamingSession, chunk: MediaChunk) -> None:
        await session.send_realtime_input(chunk)
        self.sent += 1


# ─────────────────────────────────────────────────────────
# Producers
# ─────────────────────────────────────────────────────────

class AudioEncoder:

    def __init__(self, outbound: OutboundSender, sample_rate: int = settings.AUDIO_SAMPLE_RATE):
        self.outbound = outbound
        self.mime_type = pcm_mime(sample_rate)
        self.active = False

    def on_audio_block(self, samples: np.ndarray) -> None:
        if not self.active:
            return
        data = to_base64(encode_pcm16(samples))
        self.outbound.send(MediaChunk(data=data, mime_type=self.mime_type))


class FrameSampler:

    def __init__(
        self,
        capture: MediaCapture,
        outbound: OutboundSender,
        quality: int = settings.ROUTINE_JPEG_QUALITY,
    ):
        self.capture = capture
        self.outbound = outbound
        self.quality = quality

    def tick(self) -> bool:
        frame = self.capture.read_frame()
        if frame is None:
            return False
        jpeg = encode_jpeg(frame, self.quality)
        if jpeg is None:
            logger.debug("Routine frame encode failed")
            return False
        return self.outbound.send(MediaChunk(data=to_base64(jpeg), mime_type=JPEG_MIME))


AuditHandler = Callable[[WellnessAudit, int], Union[None, Awaitable[None]]]


class DeepAnalysisSampler:
    """
    Submits a high-quality frame to the deep-analysis collaborator.

    The in-flight flag is the only concurrency control in the engine: a tick
    that lands while a call is outstanding is dropped (no queueing, no
    coalescing). Each call is tagged with the session generation so the
    owner can discard results that arrive after the session moved on.
    """

    def __init__(
        self,
        capture: MediaCapture,
        analyzer: DeepAnalysisClient,
        on_audit: AuditHandler,
        generation: Callable[[], int],
        supervisor: Optional[TaskSupervisor] = None,
        quality: int = settings.AUDIT_JPEG_QUALITY,
        instruction: str = AUDIT_INSTRUCTION,
    ):
        self.capture = capture
        self.analyzer = analyzer
        self.on_audit = on_audit
        self.generation = generation
        self.supervisor = supervisor or TaskSupervisor("deep-analysis")
        self.quality = quality
        self.instruction = instruction

        self.in_flight = False
        self.dropped_ticks = 0
        self.failures = 0

    def tick(self) -> Optional[asyncio.Task]:
        if self.in_flight:
            self.dropped_ticks += 1
            logger.debug("Deep analysis still in flight, tick dropped")
            return None

        frame = self.capture.read_frame()
        if frame is None:
            return None
        jpeg = encode_jpeg(frame, self.quality)
        if jpeg is None:
            return None

        self.in_flight = True
        task = self.supervisor.spawn(self._analyze(jpeg, self.generation()), label="analyze")
        if task is None:
            self.in_flight = False
        return task

    async def _analyze(self, jpeg: bytes, generation: int) -> None:
        try:
            audit = await self.analyzer.analyze(jpeg, self.instruction, WellnessAudit)
        except asyncio.CancelledError:
            raise
        except AnalysisError as exc:
            self.failures += 1
            logger.warning("Deep analysis failed: %s", exc)
            return
        except Exception as exc:
            self.failures += 1
            logger.warning("Deep analysis failed unexpectedly: %s", exc)
            return
        finally:
            self.in_flight = False

        result = self.on_audit(audit, generation)
        if inspect.isawaitable(result):
            await result


# ─────────────────────────────────────────────────────────
# Timer
# ─────────────────────────────────────────────────────────

class PeriodicTimer:
    """
    Fixed-rate asyncio timer. Deadlines advance by ``interval`` from the
    start time, so a slow tick does not push later ticks back. A failing
    tick is logged and the timer keeps running.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], object]):
        self.name = name
        self.interval = interval
        self.callback = callback
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"timer:{self.name}")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while True:
            deadline += self.interval
            delay = deadline - loop.time()
            if delay < 0:
                # fell behind; skip missed ticks rather than bursting
                missed = int(-delay // self.interval) + 1
                deadline += missed * self.interval
                delay = deadline - loop.time()
            await asyncio.sleep(delay)
            self.ticks += 1
            try:
                result = self.callback()
                if inspect.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Timer %s tick failed: %s", self.name, exc, exc_info=True)
