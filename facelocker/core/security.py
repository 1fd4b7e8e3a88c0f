from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

import jwt
from passlib.context import CryptContext

from .config import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__truncate_error=False)

# Locker secrets get their own context so the cost factor can differ from login secrets.
# bcrypt_sha256 pre-hashes, so secrets longer than 72 bytes are compared in full.
locker_context = CryptContext(
    schemes=["bcrypt_sha256"],
    deprecated="auto",
    bcrypt_sha256__rounds=settings.LOCKER_HASH_ROUNDS,
)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


def decode_subject(token: str) -> Optional[str]:
    """Return the ``sub`` claim of a valid token, None when expired or invalid."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Session token expired")
        return None
    except jwt.PyJWTError:
        return None
    return payload.get("sub")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def hash_locker_secret(secret: str) -> str:
    """One-way salted hash of a locker secret over its full length."""
    return locker_context.hash(secret)


def verify_locker_secret(secret: str, hashed: str) -> bool:
    try:
        return locker_context.verify(secret, hashed)
    except ValueError:
        # stored value is not a recognizable bcrypt_sha256 hash
        logger.warning("Malformed locker secret hash")
        return False
