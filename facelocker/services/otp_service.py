"""OTP issuance and verification for email activation.

One challenge per email lives in the ``otps`` collection. A new challenge
may only replace the old one once the resend window has passed. The
throttle is a plain read followed by a write: two concurrent issuances for
the same email can both pass the check and both write, in which case the
last write wins. The store gives no stronger guarantee and none is assumed.
"""
import enum
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..core.config import settings
from ..core.email import BrevoEmailDispatcher, EmailSendError, generate_otp, render_activation_email
from ..core.errors import DeliveryError, RateLimited, ValidationError
from ..schemas.otp import OtpChallenge
from .documents import OTPS, DocumentStore

logger = logging.getLogger(__name__)

_CODE = re.compile(r"^\d{6}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OtpVerification(enum.Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MISMATCH = "mismatch"

    @property
    def message(self) -> str:
        return _VERIFICATION_MESSAGES[self]


_VERIFICATION_MESSAGES = {
    OtpVerification.VERIFIED: "OTP verified successfully",
    OtpVerification.NOT_FOUND: "Invalid or expired OTP",
    OtpVerification.EXPIRED: "OTP has expired",
    OtpVerification.MISMATCH: "Invalid OTP",
}


@dataclass(frozen=True)
class IssuedOtp:
    code: str
    expires_at: datetime


class OtpStore:
    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def get(self, email: str) -> Optional[OtpChallenge]:
        data = self.documents.get(OTPS, email)
        return OtpChallenge.from_document(data) if data else None

    def put(self, challenge: OtpChallenge) -> None:
        self.documents.set(OTPS, challenge.email, challenge.to_document())


class OtpService:
    def __init__(
        self,
        store: OtpStore,
        dispatcher: BrevoEmailDispatcher,
        clock: Callable[[], datetime] = utcnow,
        lifetime: Optional[timedelta] = None,
        resend_after: Optional[timedelta] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.lifetime = lifetime or timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        self.resend_after = resend_after or timedelta(seconds=settings.OTP_RESEND_SECONDS)

    async def issue(self, email: str) -> IssuedOtp:
        """Generate, persist and mail a fresh code for *email*.

        Raises RateLimited (with the live challenge's expiry) inside the resend
        window, and DeliveryError when mailing fails after the code was stored.
        """
        if not email:
            raise ValidationError("Email is required")

        now = self.clock()
        existing = self.store.get(email)
        if existing is not None:
            elapsed = now - existing.issued_at
            if elapsed < self.resend_after:
                retry_after = max(1, int((self.resend_after - elapsed).total_seconds() + 0.999))
                logger.info("OTP resend for %s throttled, retry in %ss", email, retry_after)
                raise RateLimited(retry_after=retry_after, expires_at=existing.expires_at)

        challenge = OtpChallenge(
            email=email,
            code=generate_otp(),
            issued_at=now,
            expires_at=now + self.lifetime,
        )
        self.store.put(challenge)

        message = render_activation_email(email, challenge.code, int(self.lifetime.total_seconds() // 60))
        try:
            await self.dispatcher.send(message)
        except EmailSendError as e:
            logger.error("Failed to send OTP email to %s: %s", email, e)
            raise DeliveryError(expires_at=challenge.expires_at) from e

        logger.info("OTP issued for %s, expires at %s", email, challenge.expires_at.isoformat())
        return IssuedOtp(code=challenge.code, expires_at=challenge.expires_at)

    def verify(self, email: str, candidate: str) -> OtpVerification:
        # The challenge is left in place after a successful check; see DESIGN.md.
        if not email or not candidate:
            raise ValidationError("Email and OTP are required")
        candidate = candidate.strip()
        if not _CODE.match(candidate):
            raise ValidationError("OTP must be 6 digits")

        challenge = self.store.get(email)
        if challenge is None:
            return OtpVerification.NOT_FOUND
        if self.clock() > challenge.expires_at:
            return OtpVerification.EXPIRED
        if candidate != challenge.code:
            return OtpVerification.MISMATCH
        logger.info("OTP verified for %s", email)
        return OtpVerification.VERIFIED
