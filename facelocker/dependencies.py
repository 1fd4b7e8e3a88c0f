from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .core.database import SessionLocal
from .core.email import BrevoEmailDispatcher
from .core.errors import Unauthenticated
from .services.audit import AuditLog
from .services.capture import CaptureSessions
from .services.credentials import CredentialVerifier
from .services.documents import DocumentStore
from .services.identity import IdentityProvider
from .services.otp_service import OtpService, OtpStore
from .services.references import ReferenceImageStore
from .services.registration import RegistrationFlows
from .vision.camera import OpenCvCamera
from .vision.detector import FaceRecognitionDetector

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_document_store() -> DocumentStore:
    return DocumentStore(SessionLocal)


@lru_cache
def get_identity_provider() -> IdentityProvider:
    return IdentityProvider(SessionLocal)


@lru_cache
def get_otp_service() -> OtpService:
    return OtpService(OtpStore(get_document_store()), BrevoEmailDispatcher())


@lru_cache
def get_registration_flows() -> RegistrationFlows:
    return RegistrationFlows()


@lru_cache
def get_credential_verifier() -> CredentialVerifier:
    return CredentialVerifier(get_document_store())


@lru_cache
def get_reference_store() -> ReferenceImageStore:
    return ReferenceImageStore(get_document_store())


@lru_cache
def get_audit_log() -> AuditLog:
    return AuditLog(get_document_store())


@lru_cache
def get_capture_sessions() -> CaptureSessions:
    return CaptureSessions()


@lru_cache
def get_detector() -> FaceRecognitionDetector:
    return FaceRecognitionDetector()


def get_camera() -> OpenCvCamera:
    return OpenCvCamera()


def session_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    return credentials.credentials if credentials else None


def current_uid(
    token: Optional[str] = Depends(session_token),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> str:
    """uid of the live session; 401 when the session is missing or expired."""
    uid = identity.session_uid(token)
    if uid is None:
        raise Unauthenticated("Please log in to continue.")
    return uid
