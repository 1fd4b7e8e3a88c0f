import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

_DIGITS = re.compile(r"^\d{6,20}$")
_MOBILE = re.compile(r"^\+?\d{10,15}$")


class RegistrationForm(BaseModel):
    """Submitted registration form. Validated before any side effect."""
    account_number: str
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    mobile: str
    dob: date
    gender: Literal["male", "female", "other"] = "other"
    address: str = Field(min_length=1, max_length=500)
    password: str = Field(min_length=8, max_length=72)
    locker_password: str = Field(min_length=6, max_length=72)

    @field_validator("account_number")
    @classmethod
    def _account_number(cls, v: str) -> str:
        v = v.strip()
        if not _DIGITS.match(v):
            raise ValueError("Account number must be 6-20 digits")
        return v

    @field_validator("mobile")
    @classmethod
    def _mobile(cls, v: str) -> str:
        v = v.replace(" ", "").replace("-", "")
        if not _MOBILE.match(v):
            raise ValueError("Mobile number must be 10-15 digits")
        return v

    @field_validator("dob")
    @classmethod
    def _dob(cls, v: date) -> date:
        if v >= date.today():
            raise ValueError("Date of birth must be in the past")
        return v

    @field_validator("password")
    @classmethod
    def _password_bytes(cls, v: str) -> str:
        # login secrets use plain bcrypt, which ignores everything past 72 bytes
        if len(v.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes")
        return v

    @field_validator("name", "address")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be blank")
        return v.strip()


@dataclass
class StagedRegistration:
    """Scratch state of one in-progress registration. Never persisted as-is."""
    account_number: str
    name: str
    email: str
    mobile: str
    dob: date
    gender: str
    address: str
    password: str
    locker_password: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    uid: Optional[str] = None

    @classmethod
    def from_form(cls, form: RegistrationForm) -> "StagedRegistration":
        return cls(
            account_number=form.account_number,
            name=form.name,
            email=str(form.email).lower(),
            mobile=form.mobile,
            dob=form.dob,
            gender=form.gender,
            address=form.address,
            password=form.password,
            locker_password=form.locker_password,
        )


class UserProfile(BaseModel):
    """Durable profile in the ``users`` collection, keyed by uid."""
    model_config = ConfigDict(populate_by_name=True)

    account_number: str = Field(alias="accountNumber")
    name: str
    email: str
    mobile: str
    dob: date
    gender: str
    address: str
    locker_password_hash: str = Field(alias="lockerPassword")
    email_verified: Literal[True] = Field(True, alias="emailVerified")
    created_at: datetime = Field(alias="createdAt")
    verified_at: datetime = Field(alias="verifiedAt")

    @classmethod
    def from_staged(cls, staged: StagedRegistration, locker_password_hash: str, verified_at: datetime) -> "UserProfile":
        # Only whitelisted fields cross over; the login secret never does.
        return cls(
            account_number=staged.account_number,
            name=staged.name,
            email=staged.email,
            mobile=staged.mobile,
            dob=staged.dob,
            gender=staged.gender,
            address=staged.address,
            locker_password_hash=locker_password_hash,
            created_at=staged.created_at,
            verified_at=verified_at,
        )

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
