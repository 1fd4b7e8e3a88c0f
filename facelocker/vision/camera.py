import base64
import logging
import threading
from typing import Optional

import cv2
import numpy as np

from ..core.config import settings
from ..core.errors import DeviceAccessError
from .types import CapturedFrame

logger = logging.getLogger(__name__)


def encode_jpeg(image: np.ndarray, quality: int) -> str:
    """JPEG-encode a BGR frame and return it as a data URL."""
    ok, buf = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise DeviceAccessError("Failed to encode camera frame")
    return "data:image/jpeg;base64," + base64.b64encode(buf.tobytes()).decode("ascii")


def decode_data_url(data_url: str) -> np.ndarray:
    """Inverse of encode_jpeg, returns an RGB array."""
    _, _, payload = data_url.partition(",")
    raw = np.frombuffer(base64.b64decode(payload), dtype=np.uint8)
    bgr = cv2.imdecode(raw, cv2.IMREAD_COLOR)
    if bgr is None:
        raise ValueError("Not a decodable image")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


class OpenCvCamera:
    """Local camera via cv2.VideoCapture.

    Frames handed to detection are decoded from the compressed JPEG, so the
    detector sees exactly what gets stored.
    """

    def __init__(self, index: Optional[int] = None, width: Optional[int] = None,
                 height: Optional[int] = None, quality: Optional[int] = None):
        self.index = settings.CAMERA_INDEX if index is None else index
        self.width = width or settings.CAMERA_WIDTH
        self.height = height or settings.CAMERA_HEIGHT
        self.quality = quality or settings.JPEG_QUALITY
        self._capture = None
        self._lock = threading.Lock()

    def open(self) -> None:
        with self._lock:
            capture = cv2.VideoCapture(self.index)
            if not capture.isOpened():
                capture.release()
                raise DeviceAccessError()
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._capture = capture
            logger.info("Camera %s opened", self.index)

    def grab(self) -> CapturedFrame:
        with self._lock:
            if self._capture is None:
                raise DeviceAccessError("Camera is not open")
            ok, frame = self._capture.read()
            if not ok or frame is None:
                raise DeviceAccessError("Lost access to camera")
        encoded = encode_jpeg(frame, self.quality)
        return CapturedFrame(image=decode_data_url(encoded), encoded=encoded)

    def release(self) -> None:
        with self._lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None
                logger.info("Camera %s released", self.index)
