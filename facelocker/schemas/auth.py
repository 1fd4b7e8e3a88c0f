from datetime import datetime
from pydantic import BaseModel, EmailStr

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    uid: str

class RegisterResponse(BaseModel):
    flow_id: str
    uid: str
    session_token: str
    expires_at: datetime
    message: str

class ActivateRequest(BaseModel):
    flow_id: str
    otp: str

class ResendRequest(BaseModel):
    flow_id: str

class ResendResponse(BaseModel):
    expires_at: datetime
    seconds_remaining: int
    message: str

class LockerVerifyRequest(BaseModel):
    uid: str
    locker_password: str

class LockerVerifyResponse(BaseModel):
    success: bool
    outcome: str
    message: str
