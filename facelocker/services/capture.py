"""Timed reference image capture.

A session splits a fixed window into equal slots and makes one capture
attempt per slot: grab a frame, run face detection, keep the frame only if a
large enough face is found. When the window is over the accumulated set is
either committed in one write or rejected as a whole.

Camera and detector calls run on a single-worker executor owned by the
session, so at most one of them is in flight. Teardown queues the camera
release behind whatever call is still running and then shuts the executor
down; nothing scheduled by the session runs after ``run`` returns.
"""
import asyncio
import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from ..core.config import settings
from ..core.errors import (
    CaptureCancelled,
    CaptureInProgress,
    DeviceAccessError,
    InsufficientFrames,
    QualityGateFailure,
    SizeExceeded,
)
from ..schemas.enrollment import ReferenceImageSet
from ..vision.types import Camera, CapturedFrame, Face, FaceDetector
from .audit import AuditLog
from .otp_service import utcnow
from .references import ReferenceImageStore, estimate_document_size

logger = logging.getLogger(__name__)

PROMPTS = (
    "Look straight at the camera.",
    "Turn your head slightly to the left.",
    "Turn your head slightly to the right.",
    "Tilt your head slightly up.",
    "Tilt your head slightly down.",
)


class CaptureState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMMITTING = "committing"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CaptureProgress:
    slot: int
    slots: int
    captured: int
    prompt: str


@dataclass
class CaptureResult:
    uid: str
    images: List[str]
    size_bytes: int
    updated_at: datetime
    # computed per frame but not persisted
    descriptors: List[Sequence[float]] = field(default_factory=list)

    @property
    def frames(self) -> int:
        return len(self.images)


async def slot_ticks(window: float, slots: int) -> AsyncIterator[int]:
    """Yield slot indexes at a fixed cadence: slot i fires at start + (i + 1) * window / slots.

    A slot that overruns shortens the wait before the next one instead of
    pushing the whole schedule back.
    """
    loop = asyncio.get_running_loop()
    interval = window / slots
    start = loop.time()
    for slot in range(slots):
        delay = start + (slot + 1) * interval - loop.time()
        if delay > 0:
            await asyncio.sleep(delay)
        yield slot


class BiometricCaptureSession:
    def __init__(
        self,
        uid: str,
        camera: Camera,
        detector: FaceDetector,
        references: ReferenceImageStore,
        audit: AuditLog,
        *,
        email: Optional[str] = None,
        device: str = "unknown",
        window: Optional[float] = None,
        slots: Optional[int] = None,
        min_frames: Optional[int] = None,
        min_face_size: Optional[int] = None,
        max_document_bytes: Optional[int] = None,
        prompts: Sequence[str] = PROMPTS,
        on_progress: Optional[Callable[[CaptureProgress], None]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uid = uid
        self.camera = camera
        self.detector = detector
        self.references = references
        self.audit = audit
        self.email = email
        self.device = device
        self.window = settings.CAPTURE_WINDOW_SECONDS if window is None else window
        self.slots = slots or settings.CAPTURE_SLOTS
        self.min_frames = settings.MIN_REFERENCE_FRAMES if min_frames is None else min_frames
        self.min_face_size = settings.MIN_FACE_SIZE if min_face_size is None else min_face_size
        self.max_document_bytes = max_document_bytes or settings.MAX_REFERENCE_DOCUMENT_BYTES
        self.prompts = tuple(prompts)
        self.on_progress = on_progress
        self.clock = clock

        self.state = CaptureState.IDLE
        self._images: List[str] = []
        self._descriptors: List[Sequence[float]] = []
        self._prompt_index = 0
        self._executor: Optional[ThreadPoolExecutor] = None
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def captured(self) -> int:
        return len(self._images)

    @property
    def prompt(self) -> str:
        return self.prompts[self._prompt_index % len(self.prompts)]

    @property
    def active(self) -> bool:
        return self.state is not CaptureState.IDLE

    async def run(self) -> CaptureResult:
        """Run the whole session and return the committed set.

        Raises DeviceAccessError (camera unavailable or lost), SizeExceeded,
        InsufficientFrames, or CaptureCancelled after ``cancel()``. Any other
        failure is audited as ``error`` and re-raised.
        """
        if self.active or self._executor is not None:
            raise CaptureInProgress()

        self._images, self._descriptors, self._prompt_index = [], [], 0
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"capture-{self.uid[:8]}")
        try:
            await self._call(self.camera.open)
        except DeviceAccessError:
            self._record("device_error", False)
            await self._teardown()
            raise
        except Exception:
            self._record("error", False)
            await self._teardown()
            raise
        except BaseException:
            await self._teardown()
            raise

        self.state = CaptureState.SCANNING
        logger.info("Reference capture started for %s (%s slots over %ss)", self.uid, self.slots, self.window)
        try:
            if self._cancel_requested:
                raise CaptureCancelled()
            self._task = asyncio.create_task(self._scan())
            try:
                await self._task
            except asyncio.CancelledError:
                if not self._cancel_requested:
                    raise
                raise CaptureCancelled() from None
            except DeviceAccessError:
                raise
            except Exception:
                logger.exception("Reference capture failed for %s", self.uid)
                self._record("error", False)
                raise
            return self._finish()
        except asyncio.CancelledError:
            self._record("cancelled", False)
            raise
        except CaptureCancelled:
            self._record("cancelled", False)
            raise
        except DeviceAccessError:
            self._record("device_error", False)
            raise
        finally:
            await self._teardown()
            self._task = None
            self._cancel_requested = False
            self.state = CaptureState.IDLE

    def cancel(self) -> None:
        """Stop the slot schedule. ``run`` then releases the camera and raises CaptureCancelled.

        Ignored when no session is running.
        """
        if not self.active and self._executor is None:
            return
        self._cancel_requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _scan(self) -> None:
        async for slot in slot_ticks(self.window, self.slots):
            if self.on_progress is not None:
                self.on_progress(CaptureProgress(slot + 1, self.slots, self.captured, self.prompt))

            frame = await self._call(self.camera.grab)
            try:
                face = await self._call(self._qualify, frame)
            except QualityGateFailure as e:
                logger.info("Slot %d/%d for %s: %s", slot + 1, self.slots, self.uid, e.message)
                continue

            self._images.append(frame.encoded)
            self._descriptors.append(face.descriptor)
            self._prompt_index += 1
            logger.debug("Captured image %d for %s, size: %d bytes", self.captured, self.uid, frame.size_bytes)

    def _qualify(self, frame: CapturedFrame) -> Face:
        face = self.detector.detect(frame.image)
        if face is None:
            raise QualityGateFailure("No face detected. Please ensure your face is clearly visible.")
        if face.box.width < self.min_face_size or face.box.height < self.min_face_size:
            raise QualityGateFailure("Face is too small. Please move closer to the camera.")
        return face

    def _finish(self) -> CaptureResult:
        updated_at = self.clock()
        images = list(self._images)
        size = estimate_document_size(images, updated_at)
        logger.info("Estimated reference document size for %s: %d bytes", self.uid, size)

        if size > self.max_document_bytes:
            self.state = CaptureState.REJECTED
            self._record("size_exceeded", False)
            raise SizeExceeded(size, self.max_document_bytes, len(images))
        if len(images) < self.min_frames:
            self.state = CaptureState.REJECTED
            self._record("insufficient_frames", False)
            raise InsufficientFrames(len(images), self.min_frames)

        self.state = CaptureState.COMMITTING
        try:
            self.references.replace(self.uid, ReferenceImageSet(images=images, updated_at=updated_at))
        except Exception:
            self._record("store_error", False)
            raise
        self._record("committed", True)
        logger.info("%d reference images saved for %s", len(images), self.uid)
        return CaptureResult(
            uid=self.uid,
            images=images,
            size_bytes=size,
            updated_at=updated_at,
            descriptors=list(self._descriptors),
        )

    async def _call(self, fn, *args):
        return await asyncio.wrap_future(self._executor.submit(fn, *args))

    async def _teardown(self) -> None:
        executor, self._executor = self._executor, None
        if executor is None:
            return
        # Queued behind any grab/detect still running on the worker.
        released = executor.submit(self.camera.release)
        executor.shutdown(wait=False)
        try:
            await asyncio.shield(asyncio.wrap_future(released))
        except Exception:
            logger.exception("Failed to release camera for %s", self.uid)

    def _record(self, outcome: str, success: bool) -> None:
        self.audit.record(
            uid=self.uid,
            email=self.email,
            outcome=outcome,
            success=success,
            captured_frames=self.captured,
            device=self.device,
        )


class CaptureSessions:
    """At most one in-flight capture session per identity."""

    def __init__(self):
        self._sessions: Dict[str, BiometricCaptureSession] = {}

    def begin(self, session: BiometricCaptureSession) -> BiometricCaptureSession:
        if session.uid in self._sessions:
            raise CaptureInProgress()
        self._sessions[session.uid] = session
        return session

    def end(self, session: BiometricCaptureSession) -> None:
        if self._sessions.get(session.uid) is session:
            del self._sessions[session.uid]

    def get(self, uid: str) -> Optional[BiometricCaptureSession]:
        return self._sessions.get(uid)

    def cancel(self, uid: str) -> bool:
        session = self._sessions.get(uid)
        if session is None:
            return False
        session.cancel()
        return True
