"""Error taxonomy shared by the services and the HTTP layer.

Every error carries a short human-readable ``message`` and an HTTP
``status_code``; ``extra()`` adds the retry affordances (countdowns,
resend hints) that the client needs to recover.
"""
from datetime import datetime
from typing import Optional

from fastapi import status


class FaceLockerError(Exception):
    """Base class for all domain errors"""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def extra(self) -> dict:
        return {}


class ValidationError(FaceLockerError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "Invalid input"

    def __init__(self, message: Optional[str] = None, fields: Optional[dict] = None):
        super().__init__(message)
        self.fields = fields or {}

    def extra(self) -> dict:
        return {"fields": self.fields} if self.fields else {}


class RateLimited(FaceLockerError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Please wait before requesting another OTP"

    def __init__(self, retry_after: int, expires_at: datetime, message: Optional[str] = None):
        super().__init__(message or f"Please wait {retry_after} seconds before resending OTP")
        self.retry_after = retry_after
        self.expires_at = expires_at

    def extra(self) -> dict:
        return {"retry_after": self.retry_after, "expires_at": self.expires_at.isoformat()}


class OtpRejected(FaceLockerError):
    """OTP verification did not succeed; ``outcome`` says why."""

    def __init__(self, outcome):
        self.outcome = outcome
        super().__init__(outcome.message)

    def extra(self) -> dict:
        return {"outcome": self.outcome.value, "can_resend": True}


class DeliveryError(FaceLockerError):
    """The e-mail dispatcher failed. The challenge that was persisted stays valid."""
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Failed to send email. Please check your email address."

    def __init__(self, message: Optional[str] = None, expires_at: Optional[datetime] = None):
        super().__init__(message)
        self.expires_at = expires_at

    def extra(self) -> dict:
        if self.expires_at is None:
            return {}
        return {"expires_at": self.expires_at.isoformat(), "can_resend": True}


class AccountExists(FaceLockerError):
    status_code = status.HTTP_409_CONFLICT
    message = "An account with this email already exists"


class Unauthenticated(FaceLockerError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication lost. Please register again."


class IdentityMismatch(FaceLockerError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Session does not belong to this registration"


class InvalidTransition(FaceLockerError):
    status_code = status.HTTP_409_CONFLICT
    message = "Operation not allowed in the current registration state"


class UnknownRegistration(FaceLockerError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "No registration data. Please register again."


class DeviceAccessError(FaceLockerError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Failed to access camera. Please grant permissions."


class QualityGateFailure(FaceLockerError):
    """Per-frame rejection. Never surfaced past the capture loop."""
    message = "No usable face in frame"


class SizeExceeded(FaceLockerError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    message = "Captured images exceed the storage size limit. Try again."

    def __init__(self, size_bytes: int, limit_bytes: int, frames: int):
        super().__init__()
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        self.frames = frames

    def extra(self) -> dict:
        return {"size_bytes": self.size_bytes, "limit_bytes": self.limit_bytes, "frames": self.frames}


class InsufficientFrames(FaceLockerError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, frames: int, required: int):
        super().__init__(f"Only {frames} valid images captured. At least {required} are required.")
        self.frames = frames
        self.required = required

    def extra(self) -> dict:
        return {"frames": self.frames, "required": self.required}


class CaptureCancelled(FaceLockerError):
    status_code = status.HTTP_409_CONFLICT
    message = "Capture cancelled"


class CaptureInProgress(FaceLockerError):
    status_code = status.HTTP_409_CONFLICT
    message = "A capture session is already running for this user"
