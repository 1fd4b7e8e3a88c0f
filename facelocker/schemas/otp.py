from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class OtpChallenge(BaseModel):
    """Outstanding challenge for one email, stored in the ``otps`` collection."""
    model_config = ConfigDict(populate_by_name=True)

    email: str
    code: str = Field(alias="otp")
    issued_at: datetime = Field(alias="createdAt")
    expires_at: datetime = Field(alias="expiresAt")

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, data: dict) -> "OtpChallenge":
        return cls.model_validate(data)
