# tenant_auth/client/errors.py
from typing import Any, Optional

import httpx


class AuthClientError(Exception):
    def __init__(self, message: str, *, code: Optional[str] = None, status: Optional[int] = None,
                 details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details


class SessionInvalid(AuthClientError):
    """Definitive: the session is gone and local state must be cleared."""


class SessionExpired(SessionInvalid):
    pass


class AuthUnavailable(AuthClientError):
    """Network failure or 5xx; the session may still be fine."""


class LoginFailed(AuthClientError):
    pass


class EmailNotVerified(AuthClientError):
    pass


_SESSION_INVALID_CODES = {"SessionInvalid", "SessionMalformed", "AccessTokenInvalid", "AccessTokenExpired"}


def _body(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def error_from_response(resp: httpx.Response) -> AuthClientError:
    data = _body(resp)
    code = data.get("code")
    message = data.get("message") or data.get("detail") or f"HTTP {resp.status_code}"
    if not isinstance(message, str):
        message = str(message)
    kw = {"code": code, "status": resp.status_code, "details": data.get("details")}

    if resp.status_code >= 500:
        return AuthUnavailable(message, **kw)
    if code == "SessionExpired":
        return SessionExpired(message, **kw)
    if code in _SESSION_INVALID_CODES or (resp.status_code == 401 and code is None):
        return SessionInvalid(message, **kw)
    if code == "EmailNotVerified":
        return EmailNotVerified(message, **kw)
    return AuthClientError(message, **kw)
