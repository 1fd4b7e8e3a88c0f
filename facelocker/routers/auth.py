from fastapi import APIRouter, Depends, HTTPException
from typing import Optional

from ..core.config import access_token_expires
from ..core.security import create_access_token
from ..dependencies import (
    get_credential_verifier,
    get_document_store,
    get_identity_provider,
    get_otp_service,
    get_registration_flows,
    session_token,
)
from ..schemas.auth import (
    ActivateRequest,
    LockerVerifyRequest,
    LockerVerifyResponse,
    LoginRequest,
    RegisterResponse,
    ResendRequest,
    ResendResponse,
    TokenResponse,
)
from ..schemas.registration import RegistrationForm
from ..services.credentials import CredentialVerifier, LockerCheck
from ..services.documents import USERS, DocumentStore
from ..services.identity import IdentityProvider
from ..services.otp_service import OtpService
from ..services.registration import RegistrationFlows, RegistrationSaga

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse)
async def register(
    payload: RegistrationForm,
    otp: OtpService = Depends(get_otp_service),
    identity: IdentityProvider = Depends(get_identity_provider),
    documents: DocumentStore = Depends(get_document_store),
    flows: RegistrationFlows = Depends(get_registration_flows),
):
    """Create the login account and mail the activation OTP."""
    saga = RegistrationSaga(otp, identity, documents)
    issued = await saga.submit(payload)
    flow_id = flows.add(saga)
    return RegisterResponse(
        flow_id=flow_id,
        uid=saga.uid,
        session_token=saga.session_token,
        expires_at=issued.expires_at,
        message=f"OTP sent to {saga.email}",
    )


@router.post("/activate")
def activate(
    payload: ActivateRequest,
    token: Optional[str] = Depends(session_token),
    flows: RegistrationFlows = Depends(get_registration_flows),
):
    """Verify the OTP and write the profile."""
    saga = flows.get(payload.flow_id)
    try:
        saga.activate(payload.otp, token)
    finally:
        flows.release(payload.flow_id)
    return {"message": "Activated! Welcome aboard!", "uid": saga.uid}


@router.post("/resend-otp", response_model=ResendResponse)
async def resend_otp(payload: ResendRequest, flows: RegistrationFlows = Depends(get_registration_flows)):
    saga = flows.get(payload.flow_id)
    issued = await saga.resend()
    return ResendResponse(
        expires_at=issued.expires_at,
        seconds_remaining=saga.seconds_remaining(),
        message=f"OTP sent to {saga.email}",
    )


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
    documents: DocumentStore = Depends(get_document_store),
):
    uid = identity.authenticate(payload.email, payload.password)
    if uid is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not documents.exists(USERS, uid):
        raise HTTPException(status_code=403, detail="Account not activated. Please register again.")
    token = create_access_token({"sub": uid}, access_token_expires())
    return TokenResponse(access_token=token, uid=uid)


@router.post("/locker/verify", response_model=LockerVerifyResponse)
def verify_locker(payload: LockerVerifyRequest, verifier: CredentialVerifier = Depends(get_credential_verifier)):
    outcome = verifier.verify(payload.uid, payload.locker_password)
    if outcome is LockerCheck.NO_SUCH_IDENTITY:
        raise HTTPException(status_code=404, detail=outcome.message)
    return LockerVerifyResponse(success=outcome is LockerCheck.MATCH, outcome=outcome.value, message=outcome.message)
