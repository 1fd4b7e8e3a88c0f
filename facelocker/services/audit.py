import logging
from datetime import datetime, timezone
from typing import Optional

from ..schemas.enrollment import UploadLogEntry
from .documents import UPLOAD_LOGS, DocumentStore

logger = logging.getLogger(__name__)


class AuditLog:
    """Append-only, best-effort log of reference capture attempts.

    ``record`` never raises. A failed write is only visible through
    ``failures``, which the health endpoint reports.
    """

    def __init__(self, documents: DocumentStore):
        self.documents = documents
        self.failures = 0

    def record(
        self,
        uid: str,
        outcome: str,
        success: bool,
        captured_frames: int,
        device: str,
        email: Optional[str] = None,
    ) -> None:
        now = datetime.now(timezone.utc)
        try:
            entry = UploadLogEntry(
                user_id=uid,
                email=email,
                timestamp=now,
                success=success,
                outcome=outcome,
                captured_frames=captured_frames,
                device=device,
            )
            self.documents.set(UPLOAD_LOGS, f"{uid}_{int(now.timestamp() * 1000)}", entry.to_document())
        except Exception:
            self.failures += 1
            logger.exception("Failed to log upload attempt for %s", uid)
