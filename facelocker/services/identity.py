"""Local identity provider: login accounts plus JWT sessions."""
import logging
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..core.errors import AccountExists
from ..core.security import create_access_token, decode_subject, get_password_hash, verify_password
from ..models.account import Account

logger = logging.getLogger(__name__)


class IdentityProvider:
    def __init__(self, session_factory: sessionmaker, session_lifetime: Optional[timedelta] = None):
        self._session_factory = session_factory
        self.session_lifetime = session_lifetime

    def create_account(self, email: str, password: str) -> str:
        """Create a login account and return its uid. Single shot: never updates an existing one."""
        uid = uuid.uuid4().hex
        with self._session_factory() as db:
            db.add(Account(uid=uid, email=email.lower(), password_hash=get_password_hash(password)))
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise AccountExists() from e
        logger.info("Created account %s for %s", uid, email)
        return uid

    def authenticate(self, email: str, password: str) -> Optional[str]:
        with self._session_factory() as db:
            account = db.query(Account).filter(Account.email == email.lower()).first()
            if not account or not verify_password(password, account.password_hash):
                return None
            return account.uid

    def account_exists(self, uid: str) -> bool:
        with self._session_factory() as db:
            return db.get(Account, uid) is not None

    def open_session(self, uid: str) -> str:
        return create_access_token({"sub": uid}, self.session_lifetime)

    def session_uid(self, token: Optional[str]) -> Optional[str]:
        """uid behind a live session token; None when missing, expired or unknown."""
        if not token:
            return None
        uid = decode_subject(token)
        if uid is None or not self.account_exists(uid):
            return None
        return uid
