"""
Authentication Schemas

Pydantic models for auth request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


OTPType = Literal["signup", "login"]


class UserRegisterRequest(BaseModel):
    """User registration request."""

    email: EmailStr
    # bcrypt only considers the first 72 bytes
    password: str = Field(..., min_length=8, max_length=72)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class UserLoginRequest(BaseModel):
    """User login request."""

    email: EmailStr
    password: str


class OTPVerifyRequest(BaseModel):
    """OTP verification request."""

    email: EmailStr
    code: str = Field(..., pattern=r"^\d{6}$")
    type: OTPType = "login"


class OTPResendRequest(BaseModel):
    """OTP resend request."""

    email: EmailStr
    type: OTPType = "login"


class LoginResponse(BaseModel):
    """First login step: password accepted, code sent."""

    otp_required: bool = True
    email: str
    message: str = "A verification code has been sent to your email"


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class RefreshTokenRequest(BaseModel):
    """Token refresh request."""

    refresh_token: str


class UserResponse(BaseModel):
    """User data response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str] = None
    is_active: bool
    is_verified: bool
    is_admin: bool
    created_at: datetime
    last_login_at: Optional[datetime]


class AuthResponse(BaseModel):
    """Full auth response with tokens and user."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class PasswordChangeRequest(BaseModel):
    """Password change request."""

    current_password: str
    new_password: str = Field(..., min_length=8, max_length=72)


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str
    success: bool = True
