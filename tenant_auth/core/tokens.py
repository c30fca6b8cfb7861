# tenant_auth/core/tokens.py
from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError, ExpiredSignatureError
from tenant_auth.core.config import settings
from tenant_auth.core.errors import AccessTokenExpired, AccessTokenInvalid

ALGO = settings.ALGORITHM

# refresh token opaco: 48 bytes -> 64 chars urlsafe
REFRESH_TOKEN_BYTES = 48
_REFRESH_SHAPE = re.compile(r"^[A-Za-z0-9_\-]{64}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite devolve datetimes sem tz; tudo aqui é UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _exp(minutes: int) -> datetime:
    return utcnow() + timedelta(minutes=minutes)


def refresh_expiry(remember_me: bool = False) -> datetime:
    days = settings.REMEMBER_ME_EXPIRE_DAYS if remember_me else settings.REFRESH_TOKEN_EXPIRE_DAYS
    return utcnow() + timedelta(days=days)


# ---------------------------------------------------------------------------
# access token (stateless)
# ---------------------------------------------------------------------------
def create_access_token(*, user_id: int, tenant_id: int, role: str, session_id: int,
                        email_verified: bool, minutes: Optional[int] = None) -> str:
    """Access token curto (minutos), assinado com JWT_SECRET."""
    now = utcnow()
    payload: Dict[str, Any] = {
        "type": "access",
        "sub": str(user_id),
        "tenant_id": tenant_id,
        "role": role,
        "sid": session_id,
        "ev": bool(email_verified),
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int(_exp(minutes if minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGO)


def decode_access(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGO])
    except ExpiredSignatureError as exc:
        raise AccessTokenExpired() from exc
    except JWTError as exc:
        raise AccessTokenInvalid() from exc
    if not isinstance(payload, dict) or payload.get("type") != "access":
        raise AccessTokenInvalid()
    if not payload.get("sub") or payload.get("tenant_id") is None or payload.get("sid") is None:
        raise AccessTokenInvalid()
    return payload


# ---------------------------------------------------------------------------
# pre-auth marker (senha ok, falta o segundo fator)
# ---------------------------------------------------------------------------
def create_preauth_token(*, user_id: int, tenant_id: int, remember_me: bool) -> str:
    now = utcnow()
    payload: Dict[str, Any] = {
        "type": "preauth",
        "sub": str(user_id),
        "tenant_id": tenant_id,
        "rm": bool(remember_me),
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int(_exp(settings.PREAUTH_EXPIRE_MINUTES).timestamp()),
    }
    return jwt.encode(payload, settings.SESSION_SECRET, algorithm=ALGO)


def decode_preauth(token: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, settings.SESSION_SECRET, algorithms=[ALGO])
    except JWTError:
        return None
    if not isinstance(payload, dict) or payload.get("type") != "preauth":
        return None
    if not payload.get("sub") or payload.get("tenant_id") is None:
        return None
    return payload


# ---------------------------------------------------------------------------
# refresh token (opaco, persistido só como fingerprint)
# ---------------------------------------------------------------------------
def new_refresh_token() -> str:
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


def is_well_formed_refresh(token: Optional[str]) -> bool:
    return isinstance(token, str) and bool(_REFRESH_SHAPE.match(token))


def fingerprint(token: str) -> str:
    return hmac.new(settings.SESSION_SECRET.encode("utf-8"), token.encode("utf-8"), hashlib.sha256).hexdigest()


def new_verification_token() -> str:
    return secrets.token_hex(32)


def digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
