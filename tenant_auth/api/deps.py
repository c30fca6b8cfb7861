from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from tenant_auth.core.config import settings
from tenant_auth.core.device import client_ip
from tenant_auth.core.errors import AccessTokenInvalid, EmailNotVerified
from tenant_auth.core.ratelimit import limiter
from tenant_auth.core.tenancy import resolve_tenant
from tenant_auth.core.tokens import decode_access
from tenant_auth.crud.user import user_crud
from tenant_auth.db.session import get_db
from tenant_auth.models.tenant import Tenant
from tenant_auth.models.user import User


@dataclass
class AuthContext:
    user: User
    session_id: int
    claims: Dict[str, Any]


# ----------------------------------------------------------------------
# Lê o Bearer do header Authorization (sem usar OAuth2PasswordBearer)
# ----------------------------------------------------------------------
def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def get_bearer_token(authorization: Optional[str] = Header(None, alias="Authorization")) -> str:
    token = parse_bearer(authorization)
    if not token:
        raise AccessTokenInvalid("Access token required.")
    return token


# ----------------------------------------------------------------------
# Tenant do login/registro: header X-Tenant, senão o tenant padrão
# ----------------------------------------------------------------------
def get_request_tenant(
    x_tenant: Optional[str] = Header(None, alias="X-Tenant"),
    db: Session = Depends(get_db),
) -> Tenant:
    return resolve_tenant(db, x_tenant or settings.DEFAULT_TENANT)


# ----------------------------------------------------------------------
# Usuário atual: tenant e sessão vêm das claims do access token
# ----------------------------------------------------------------------
def get_auth_context(
    token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db),
) -> AuthContext:
    claims = decode_access(token)
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError) as exc:
        raise AccessTokenInvalid() from exc

    user = user_crud.get(db, user_id)
    if user is None or user.tenant_id != claims["tenant_id"] or not user.is_active:
        raise AccessTokenInvalid()
    return AuthContext(user=user, session_id=int(claims["sid"]), claims=claims)


def require_verified(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Gate for everything outside the unverified allow-list."""
    if not ctx.user.email_verified:
        raise EmailNotVerified(details={"email": ctx.user.email})
    return ctx


def rate_limit(scope: str, limit_setting: str):
    """Per-IP bucket for one endpoint, e.g. ``rate_limit("login", "LOGIN_RATE_LIMIT")``."""

    def _dep(request: Request) -> None:
        limiter.hit(
            f"auth:{scope}:ip:{client_ip(request)}",
            limit=getattr(settings, limit_setting),
            per_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )

    return _dep


def hit_email_bucket(scope: str, limit_setting: str, tenant: Tenant, email: Optional[str]) -> None:
    if not email:
        return
    limiter.hit(
        f"auth:{scope}:email:{tenant.id}:{email.strip().lower()}",
        limit=getattr(settings, limit_setting),
        per_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )
