"""Shared fixtures: in-memory database, fake clock, fake mail, fake camera."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("LOCKER_HASH_ROUNDS", "4")
os.environ.setdefault("CAPTURE_WINDOW_SECONDS", "0.05")

from datetime import date, datetime, timedelta, timezone

import pytest

from facelocker.core.database import build_engine, build_session_factory, create_tables
from facelocker.core.email import EmailSendError
from facelocker.core.errors import DeviceAccessError
from facelocker.services.audit import AuditLog
from facelocker.services.documents import DocumentStore
from facelocker.services.identity import IdentityProvider
from facelocker.services.otp_service import OtpService, OtpStore
from facelocker.services.references import ReferenceImageStore
from facelocker.vision.types import BoundingBox, CapturedFrame, Face

pytest_plugins = ["pytest_asyncio"]


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeDispatcher:
    """Records messages instead of sending them."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, message):
        if self.fail:
            raise EmailSendError("smtp down")
        self.sent.append(message)
        return "test-id"


class FakeCamera:
    """Hands out pre-scripted frames; each frame's image is a label for FakeDetector."""

    def __init__(self, labels, available=True, payload_size=1000, fail_after=None):
        self.labels = list(labels)
        self.available = available
        self.payload_size = payload_size
        self.fail_after = fail_after
        self.opened = False
        self.released = False
        self.grabs = 0

    def open(self):
        if not self.available:
            raise DeviceAccessError()
        self.opened = True

    def grab(self):
        if self.fail_after is not None and self.grabs >= self.fail_after:
            raise DeviceAccessError("Lost access to camera")
        label = self.labels[self.grabs % len(self.labels)]
        self.grabs += 1
        encoded = "data:image/jpeg;base64," + ("A" * self.payload_size) + str(self.grabs)
        return CapturedFrame(image=label, encoded=encoded)

    def release(self):
        self.released = True
        self.opened = False


class FakeDetector:
    """valid -> big face, small -> 50px face, anything else -> no face."""

    def __init__(self):
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        if image == "valid":
            return Face(box=BoundingBox(0, 0, 160, 180), descriptor=[0.1] * 128)
        if image == "small":
            return Face(box=BoundingBox(0, 0, 50, 50), descriptor=[0.2] * 128)
        return None


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def documents(session_factory):
    return DocumentStore(session_factory)


@pytest.fixture
def identity(session_factory):
    return IdentityProvider(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def otp_store(documents):
    return OtpStore(documents)


@pytest.fixture
def otp_service(otp_store, dispatcher, clock):
    return OtpService(otp_store, dispatcher, clock=clock)


@pytest.fixture
def references(documents):
    return ReferenceImageStore(documents)


@pytest.fixture
def audit(documents):
    return AuditLog(documents)


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def fake_camera():
    return FakeCamera


@pytest.fixture
def registration_form():
    return {
        "account_number": "96546461",
        "name": "Alex Morgan",
        "email": "alex@example.com",
        "mobile": "+14155550123",
        "dob": date(1990, 5, 17).isoformat(),
        "gender": "other",
        "address": "12 Harbour Road",
        "password": "login-secret-1",
        "locker_password": "482913",
    }
