"""Document store on top of SQLAlchemy.

Each call opens its own session and commits on its own, so a single
document write is atomic. Nothing here spans more than one document:
read-then-write sequences built on top of it are not serialized.
"""
import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from ..models.document import Document

logger = logging.getLogger(__name__)

OTPS = "otps"
USERS = "users"
REFERENCE_IMAGES = "reference_images"
UPLOAD_LOGS = "reference_upload_logs"


class DocumentStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, collection: str, key: str) -> Optional[dict]:
        with self._session_factory() as db:
            doc = db.get(Document, (collection, key))
            return dict(doc.data) if doc else None

    def set(self, collection: str, key: str, data: dict) -> None:
        """Full replace of the document at (collection, key)."""
        with self._session_factory() as db:
            doc = db.get(Document, (collection, key))
            if doc is None:
                db.add(Document(collection=collection, key=key, data=data))
            else:
                doc.data = data
            db.commit()

    def delete(self, collection: str, key: str) -> bool:
        with self._session_factory() as db:
            doc = db.get(Document, (collection, key))
            if doc is None:
                return False
            db.delete(doc)
            db.commit()
            return True

    def exists(self, collection: str, key: str) -> bool:
        with self._session_factory() as db:
            return db.get(Document, (collection, key)) is not None

    def count(self, collection: str) -> int:
        with self._session_factory() as db:
            return db.query(Document).filter(Document.collection == collection).count()
