import json
import logging
from datetime import datetime
from typing import List, Optional

from ..schemas.enrollment import ReferenceImageSet
from .documents import REFERENCE_IMAGES, DocumentStore

logger = logging.getLogger(__name__)


def estimate_document_size(images: List[str], updated_at: datetime) -> int:
    """Bytes of the serialized reference document, envelope included."""
    document = ReferenceImageSet(images=images, updated_at=updated_at).to_document()
    return len(json.dumps(document).encode("utf-8"))


class ReferenceImageStore:
    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def load(self, uid: str) -> Optional[ReferenceImageSet]:
        data = self.documents.get(REFERENCE_IMAGES, uid)
        return ReferenceImageSet.model_validate(data) if data else None

    def replace(self, uid: str, reference_set: ReferenceImageSet) -> None:
        """Drop whatever set *uid* had, then store the new one in a single write."""
        if self.documents.delete(REFERENCE_IMAGES, uid):
            logger.info("Cleared existing images for user %s", uid)
        self.documents.set(REFERENCE_IMAGES, uid, reference_set.to_document())
