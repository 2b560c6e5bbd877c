"""
Tenjin Media Capture
====================
Two MediaCapture implementations:

  • ``RelayedMediaCapture``: the host UI owns camera and microphone and
    relays JPEG frames and float32 audio blocks over the session WebSocket.
    Acquisition succeeds once the first frame arrives.
  • ``CameraCapture``: a camera attached to this machine, read by a
    background thread with OpenCV. Produces video only.
"""

import asyncio
import base64
import logging
import platform
import threading
import time
from typing import Optional

import cv2
import numpy as np

from tenjin.core.config import settings
from tenjin.core.exceptions import AcquisitionError
from tenjin.services.interfaces import AudioCallback

logger = logging.getLogger("tenjin.capture")


def decode_jpeg(data_b64: str) -> Optional[np.ndarray]:
    """Base64 JPEG -> BGR frame, or None if it does not decode."""
    try:
        img_bytes = base64.b64decode(data_b64)
    except (ValueError, TypeError):
        return None
    nparr = np.frombuffer(img_bytes, np.uint8)
    if nparr.size == 0:
        return None
    return cv2.imdecode(nparr, cv2.IMREAD_COLOR)


def decode_audio_block(data_b64: str) -> Optional[np.ndarray]:
    """Base64 little-endian float32 samples -> 1-D array, or None if malformed."""
    try:
        raw = base64.b64decode(data_b64)
    except (ValueError, TypeError):
        return None
    if not raw or len(raw) % 4:
        return None
    return np.frombuffer(raw, dtype="<f4")


# ─────────────────────────────────────────────────────────
# Relay (host UI captures, we receive)
# ─────────────────────────────────────────────────────────

class RelayedMediaCapture:

    def __init__(self, acquisition_timeout: float = settings.ACQUISITION_TIMEOUT_SECONDS):
        self.acquisition_timeout = acquisition_timeout
        self._frame: Optional[np.ndarray] = None
        self._first_frame: Optional[asyncio.Event] = None
        self._audio_callback: Optional[AudioCallback] = None
        self.devices_granted = True
        self.frames_received = 0
        self.audio_blocks_received = 0

    async def open(self) -> None:
        if not self.devices_granted:
            raise AcquisitionError("camera/microphone permission denied by client")
        if self._frame is not None:
            return
        first_frame = asyncio.Event()
        self._first_frame = first_frame
        try:
            await asyncio.wait_for(first_frame.wait(), timeout=self.acquisition_timeout)
        except asyncio.TimeoutError:
            raise AcquisitionError(
                f"no video frame received within {self.acquisition_timeout:.1f}s"
            ) from None
        finally:
            # a newer open() may own the pending event by now
            if self._first_frame is first_frame:
                self._first_frame = None

    def push_frame(self, data_b64: str) -> bool:
        frame = decode_jpeg(data_b64)
        if frame is None:
            logger.debug("Relayed frame did not decode")
            return False
        self._frame = frame
        self.frames_received += 1
        if self._first_frame is not None:
            self._first_frame.set()
        return True

    def push_audio(self, data_b64: str) -> bool:
        samples = decode_audio_block(data_b64)
        if samples is None:
            logger.debug("Relayed audio block malformed")
            return False
        self.audio_blocks_received += 1
        if self._audio_callback is not None:
            self._audio_callback(samples)
        return True

    def read_frame(self) -> Optional[np.ndarray]:
        return self._frame

    def set_audio_callback(self, callback: Optional[AudioCallback]) -> None:
        self._audio_callback = callback

    def release(self) -> None:
        self._frame = None
        self._audio_callback = None


# ─────────────────────────────────────────────────────────
# Local camera
# ─────────────────────────────────────────────────────────

def _open_camera(index: int, width: int, height: int) -> cv2.VideoCapture:
    """Try multiple backends to open camera reliably (especially on Windows)"""
    if platform.system() == "Windows":
        backends = [
            (cv2.CAP_DSHOW, "DirectShow"),
            (cv2.CAP_MSMF, "MSMF"),
            (cv2.CAP_ANY, "Any"),
        ]
    else:
        backends = [
            (cv2.CAP_V4L2, "V4L2"),
            (cv2.CAP_ANY, "Any"),
        ]

    for backend, name in backends:
        logger.info(f"Trying camera {index} with backend {name} ({backend})")
        cap = cv2.VideoCapture(index, backend)
        if cap.isOpened():
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            logger.info(f"Camera opened successfully with {name}")
            return cap
        cap.release()
        logger.warning(f"Failed to open camera with {name}")
    return cv2.VideoCapture(index)


class CameraCapture:
    """
    Local webcam. A daemon thread keeps the latest frame so the samplers
    never block the event loop on ``cap.read()``.
    """

    def __init__(
        self,
        index: int = settings.CAMERA_INDEX,
        width: int = settings.CAMERA_WIDTH,
        height: int = settings.CAMERA_HEIGHT,
    ):
        self.index = index
        self.width = width
        self.height = height
        self._cap: Optional[cv2.VideoCapture] = None
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    async def open(self) -> None:
        loop = asyncio.get_running_loop()
        cap = await loop.run_in_executor(None, _open_camera, self.index, self.width, self.height)
        if not cap.isOpened():
            cap.release()
            raise AcquisitionError(f"cannot open camera {self.index}")
        self._cap = cap
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._reader, name="CameraReader", daemon=True)
        self._thread.start()

    def _reader(self) -> None:
        while not self._stop_event.is_set():
            cap = self._cap
            if cap is None:
                break
            success, frame = cap.read()
            if not success:
                time.sleep(0.01)
                continue
            with self._lock:
                self._frame = frame

    def read_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame

    def set_audio_callback(self, callback: Optional[AudioCallback]) -> None:
        # no microphone on this path; audio only arrives via the relay
        pass

    def release(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        with self._lock:
            self._frame = None
