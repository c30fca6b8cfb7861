# tenant_auth/core/errors.py
"""Typed auth failures.

Every error carries a stable ``code`` (what clients branch on) and the HTTP
status the API layer answers with. ``Requires2FA`` is deliberately absent: a
second-factor challenge is a protocol state, see ``services.issuer``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class AuthError(Exception):
    code: str = "AuthError"
    status_code: int = 400
    message: str = "Authentication error."

    def __init__(self, message: Optional[str] = None, *, details: Any = None, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.message
        self.details = details
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidCredentials(AuthError):
    code = "InvalidCredentials"
    status_code = 401
    message = "Invalid credentials."


class EmailNotVerified(AuthError):
    code = "EmailNotVerified"
    status_code = 403
    message = "Email address has not been verified."

    def __init__(self, message: Optional[str] = None, *, grant: Any = None, **kw):
        super().__init__(message, **kw)
        # sessão emitida mesmo assim; o cliente fica autenticado porém restrito
        self.grant = grant


class EmailAlreadyExists(AuthError):
    code = "EmailAlreadyExists"
    status_code = 409
    message = "User already exists with this email."


class IncorrectCurrentPassword(AuthError):
    code = "IncorrectCurrentPassword"
    status_code = 400
    message = "Current password is incorrect."


class PasswordPolicyViolation(AuthError):
    code = "PasswordPolicyViolation"
    status_code = 422
    message = "Password does not meet the policy."


class SessionMalformed(AuthError):
    code = "SessionMalformed"
    status_code = 401
    message = "Refresh token is missing or malformed."


class SessionInvalid(AuthError):
    code = "SessionInvalid"
    status_code = 401
    message = "Session is no longer valid."


class SessionExpired(AuthError):
    code = "SessionExpired"
    status_code = 401
    message = "Session has expired."


class SessionNotFound(AuthError):
    code = "SessionNotFound"
    status_code = 404
    message = "Session not found."


class AccessTokenInvalid(AuthError):
    code = "AccessTokenInvalid"
    status_code = 401
    message = "Access token is invalid."


class AccessTokenExpired(AuthError):
    code = "AccessTokenExpired"
    status_code = 401
    message = "Access token has expired."


class RateLimited(AuthError):
    code = "RateLimited"
    status_code = 429
    message = "Too many attempts, please try again later."

    def __init__(self, message: Optional[str] = None, *, retry_after: int = 60, **kw):
        kw.setdefault("headers", {"Retry-After": str(int(retry_after))})
        kw.setdefault("details", {"retryAfter": int(retry_after)})
        super().__init__(message, **kw)
        self.retry_after = int(retry_after)


class InvalidTwoFactorCode(AuthError):
    code = "InvalidTwoFactorCode"
    status_code = 400
    message = "Invalid two-factor code."


class TwoFactorAlreadyEnabled(AuthError):
    code = "TwoFactorAlreadyEnabled"
    status_code = 400
    message = "Two-factor authentication is already enabled."


class TwoFactorNotEnabled(AuthError):
    code = "TwoFactorNotEnabled"
    status_code = 400
    message = "Two-factor authentication is not enabled."


class TwoFactorSetupRequired(AuthError):
    code = "TwoFactorSetupRequired"
    status_code = 400
    message = "Two-factor setup has not been initiated."


class InvalidVerificationToken(AuthError):
    code = "InvalidVerificationToken"
    status_code = 400
    message = "Invalid or expired verification token."


class EmailAlreadyVerified(AuthError):
    code = "EmailAlreadyVerified"
    status_code = 400
    message = "Email is already verified."


class TenantNotFound(AuthError):
    code = "TenantNotFound"
    status_code = 404
    message = "Tenant not found."
