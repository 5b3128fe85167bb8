"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Field rules beyond presence and size live in the domain validation engine,
so clients get its messages.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Request model for referral-gated registration."""

    username: str = Field(..., min_length=1, max_length=50)
    phone_number: str = Field(..., min_length=1, max_length=32)
    email: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128)
    gstn: str = Field(..., min_length=1, max_length=32, description="15-character GSTN")
    referral_code: str = Field(..., min_length=1, max_length=64)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    captcha_token: str | None = None


class RegisterResponse(BaseModel):
    """Response model for successful registration."""

    message: str
    requires_otp: bool


class VerifyOtpRequest(BaseModel):
    """Request model for account activation."""

    email: str = Field(..., min_length=1, max_length=320)
    otp: str = Field(
        ...,
        min_length=6,
        max_length=6,
        pattern=r"^\d{6}$",
        description="6-digit code from the verification email",
    )
    captcha_token: str | None = None


class RequestOtpRequest(BaseModel):
    """Request model for (re)sending an activation code."""

    email: str = Field(..., min_length=1, max_length=320)
    captcha_token: str | None = None


class LoginRequest(BaseModel):
    """Request model for password login."""

    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(BaseModel):
    """Public view of a user. Never includes hashes or codes."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    phone_number: str
    tax_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email_verified: bool
    account_activated: bool
    created_at: datetime | None = None


class VerifyOtpResponse(BaseModel):
    """Response model for successful activation."""

    message: str
    token: str
    user: UserResponse


class LoginResponse(BaseModel):
    """Response model for successful login."""

    user: UserResponse
    token: str


class ProfileResponse(BaseModel):
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


class ReferralCreateRequest(BaseModel):
    """Request model for issuing a referral code."""

    max_uses: int | None = None
    expires_at: datetime | None = None
    allowed_email_domain: str | None = Field(default=None, max_length=253)


class ReferralResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    max_uses: int
    used_count: int
    expires_at: datetime | None = None
    allowed_email_domain: str | None = None
    is_active: bool
    created_at: datetime | None = None


class ReferralCreateResponse(BaseModel):
    message: str
    referral: ReferralResponse


class ReferralListResponse(BaseModel):
    referrals: list[ReferralResponse]


class ReferralStatsBody(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    used_count: int
    max_uses: int
    remaining: int


class ReferralStatsResponse(BaseModel):
    stats: ReferralStatsBody


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
