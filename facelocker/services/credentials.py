import enum
import logging

from ..core.security import verify_locker_secret
from .documents import USERS, DocumentStore

logger = logging.getLogger(__name__)


class LockerCheck(enum.Enum):
    MATCH = "match"
    NO_SUCH_IDENTITY = "no_such_identity"
    MISMATCH = "mismatch"

    @property
    def message(self) -> str:
        return {
            LockerCheck.MATCH: "Locker password verified successfully",
            LockerCheck.NO_SUCH_IDENTITY: "User not found",
            LockerCheck.MISMATCH: "Invalid locker password",
        }[self]


class CredentialVerifier:
    """Check a locker secret against the hash stored on the user profile. Read-only."""

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def verify(self, uid: str, secret: str) -> LockerCheck:
        profile = self.documents.get(USERS, uid) if uid else None
        if profile is None:
            return LockerCheck.NO_SUCH_IDENTITY

        stored = profile.get("lockerPassword")
        if not stored or not secret:
            return LockerCheck.MISMATCH
        if not verify_locker_secret(secret, stored):
            logger.info("Locker password mismatch for %s", uid)
            return LockerCheck.MISMATCH
        return LockerCheck.MATCH
