from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ReferenceImageSet(BaseModel):
    """Stored reference frames for one identity (``reference_images`` collection)."""
    model_config = ConfigDict(populate_by_name=True)

    images: List[str]
    updated_at: datetime = Field(alias="updatedAt")

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class UploadLogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    email: Optional[str] = None
    timestamp: datetime
    success: bool
    outcome: str
    captured_frames: int = Field(alias="capturedFrames")
    device: str

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CaptureResponse(BaseModel):
    outcome: str
    frames: int
    size_bytes: int
    updated_at: datetime


class ReferenceSetSummary(BaseModel):
    uid: str
    frames: int
    updated_at: Optional[datetime] = None
