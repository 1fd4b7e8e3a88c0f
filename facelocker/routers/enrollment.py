from fastapi import APIRouter, Depends, Request

from ..dependencies import (
    current_uid,
    get_audit_log,
    get_camera,
    get_capture_sessions,
    get_detector,
    get_document_store,
    get_reference_store,
)
from ..schemas.enrollment import CaptureResponse, ReferenceSetSummary
from ..services.audit import AuditLog
from ..services.capture import BiometricCaptureSession, CaptureSessions
from ..services.documents import USERS, DocumentStore
from ..services.references import ReferenceImageStore

router = APIRouter(prefix="/enrollment", tags=["enrollment"])


@router.post("/reference-images", response_model=CaptureResponse)
async def capture_reference_images(
    request: Request,
    uid: str = Depends(current_uid),
    sessions: CaptureSessions = Depends(get_capture_sessions),
    references: ReferenceImageStore = Depends(get_reference_store),
    audit: AuditLog = Depends(get_audit_log),
    documents: DocumentStore = Depends(get_document_store),
    camera=Depends(get_camera),
    detector=Depends(get_detector),
):
    """Run a capture session on the kiosk camera; blocks for the whole window."""
    profile = documents.get(USERS, uid) or {}
    session = BiometricCaptureSession(
        uid,
        camera,
        detector,
        references,
        audit,
        email=profile.get("email"),
        device=request.headers.get("user-agent", "unknown"),
    )
    sessions.begin(session)
    try:
        result = await session.run()
    finally:
        sessions.end(session)

    return CaptureResponse(
        outcome="committed",
        frames=result.frames,
        size_bytes=result.size_bytes,
        updated_at=result.updated_at,
    )


@router.delete("/reference-images/session")
def cancel_capture(uid: str = Depends(current_uid), sessions: CaptureSessions = Depends(get_capture_sessions)):
    cancelled = sessions.cancel(uid)
    return {"cancelled": cancelled}


@router.get("/reference-images", response_model=ReferenceSetSummary)
def reference_summary(uid: str = Depends(current_uid), references: ReferenceImageStore = Depends(get_reference_store)):
    reference_set = references.load(uid)
    if reference_set is None:
        return ReferenceSetSummary(uid=uid, frames=0)
    return ReferenceSetSummary(uid=uid, frames=len(reference_set.images), updated_at=reference_set.updated_at)
