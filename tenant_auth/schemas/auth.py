# tenant_auth/schemas/auth.py
from __future__ import annotations
from typing import Any, Dict, Optional
from pydantic import EmailStr, Field

from tenant_auth.schemas.user import CamelModel, UserPublic


class LoginRequest(CamelModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    two_factor_token: Optional[str] = None
    pre_auth_token: Optional[str] = None
    remember_me: bool = False


class AuthTokens(CamelModel):
    message: str = "Login successful"
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserPublic


class TwoFactorChallengeOut(CamelModel):
    message: str = "2FA token required"
    requires_2fa: bool = Field(default=True, alias="requires2FA")
    pre_auth_token: str


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class ResendVerificationRequest(CamelModel):
    email: EmailStr


class VerifyEmailOut(CamelModel):
    message: str = "Email verified successfully! You can now log in to your account."
    verified: bool = True


class TwoFactorCode(CamelModel):
    token: str = Field(min_length=6, max_length=6)


class TwoFactorSetupOut(CamelModel):
    secret: str
    otpauth_url: str
    qr_code: str


def tokens_payload(grant, message: str = "Login successful") -> Dict[str, Any]:
    return AuthTokens(
        message=message,
        access_token=grant.access_token,
        refresh_token=grant.refresh_token,
        expires_in=grant.expires_in,
        user=UserPublic.model_validate(grant.user),
    ).model_dump(by_alias=True, mode="json")
