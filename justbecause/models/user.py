from pydantic import BaseModel, Field, EmailStr
from typing import Optional, Literal

class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=8, max_length=128)
    role: Optional[Literal["volunteer", "ngo"]] = None
    referral_code: Optional[str] = None

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    is_onboarded: bool
    email_verified: bool
    avatar: Optional[str] = None
    subscription_plan: str
    subscription_expiry: Optional[str] = None
    created_at: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse

class SelectRoleRequest(BaseModel):
    role: Literal["volunteer", "ngo"]

class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8, max_length=128)

class SendOtpRequest(BaseModel):
    email: EmailStr
    purpose: Literal["verify_email", "reset_password"] = "verify_email"

class VerifyOtpRequest(BaseModel):
    email: EmailStr
    code: str = Field(min_length=6, max_length=6)

class ResetPasswordRequest(BaseModel):
    email: EmailStr
    code: str = Field(min_length=6, max_length=6)
    new_password: str = Field(min_length=8, max_length=128)

class PrivacySettings(BaseModel):
    show_profile: Optional[bool] = None
    show_in_search: Optional[bool] = None
    email_notifications: Optional[bool] = None
    application_notifications: Optional[bool] = None
    message_notifications: Optional[bool] = None
    opportunity_digest: Optional[bool] = None
