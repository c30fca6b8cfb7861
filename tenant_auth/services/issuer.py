# tenant_auth/services/issuer.py
"""Credential & token issuer.

Login, registration and the account operations that touch credentials.
Routes stay thin: they translate HTTP into calls here and :class:`AuthError`
subclasses back into responses.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tenant_auth.core.config import settings
from tenant_auth.core.device import DeviceInfo
from tenant_auth.core.errors import (
    EmailAlreadyExists,
    EmailAlreadyVerified,
    EmailNotVerified,
    IncorrectCurrentPassword,
    InvalidCredentials,
    InvalidTwoFactorCode,
    InvalidVerificationToken,
    PasswordPolicyViolation,
    RateLimited,
    TwoFactorAlreadyEnabled,
    TwoFactorNotEnabled,
    TwoFactorSetupRequired,
)
from tenant_auth.core.security_password import (
    dummy_verify,
    ensure_password_policy,
    hash_password,
    verify_and_maybe_upgrade,
)
from tenant_auth.core.tokens import (
    as_utc,
    create_access_token,
    create_preauth_token,
    decode_preauth,
    digest,
    new_refresh_token,
    new_verification_token,
    refresh_expiry,
    utcnow,
)
from tenant_auth.core.totp import generate_qr_code_base64, generate_totp_secret, get_totp_uri, verify_totp
from tenant_auth.crud import device_session as session_store
from tenant_auth.crud.user import normalize_email, user_crud
from tenant_auth.models.device_session import DeviceSession
from tenant_auth.models.tenant import Tenant
from tenant_auth.models.user import User
from tenant_auth.schemas.user import UserPublic
from tenant_auth.services.mailer import Mailer

logger = logging.getLogger(__name__)


@dataclass
class LoginGrant:
    access_token: str
    refresh_token: str
    expires_in: int
    user: User
    session: DeviceSession


@dataclass
class TwoFactorChallenge:
    """Senha conferida; falta o código TOTP."""
    pre_auth_token: str


@dataclass
class TwoFactorSetup:
    secret: str
    otpauth_url: str
    qr_code: str


def public_user(user: User) -> Dict[str, Any]:
    """User as the API shows it: no hash, no TOTP secret, no verification token."""
    return UserPublic.model_validate(user).model_dump(by_alias=True, mode="json")


def access_token_for(user: User, session: DeviceSession) -> str:
    return create_access_token(
        user_id=user.id,
        tenant_id=user.tenant_id,
        role=user.role,
        session_id=session.id,
        email_verified=user.email_verified,
    )


def access_ttl_seconds() -> int:
    return settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def _issue(db: Session, user: User, device: DeviceInfo, remember_me: bool) -> LoginGrant:
    refresh_token = new_refresh_token()
    row = session_store.create(db, user, refresh_token, refresh_expiry(remember_me), device, remember_me=remember_me)
    user.last_login_at = utcnow()
    db.add(user); db.commit(); db.refresh(user)
    return LoginGrant(
        access_token=access_token_for(user, row),
        refresh_token=refresh_token,
        expires_in=access_ttl_seconds(),
        user=user,
        session=row,
    )


def _check_password(db: Session, tenant: Tenant, email: Optional[str], password: Optional[str]) -> User:
    if not email or not password:
        raise InvalidCredentials()

    user = user_crud.get_by_email(db, email, tenant.id)
    if user is None:
        dummy_verify()
        logger.info("login failed: unknown email in tenant %s", tenant.slug)
        raise InvalidCredentials()

    ok, new_hash = verify_and_maybe_upgrade(password, user.password_hash)
    if not ok or not user.is_active:
        logger.info("login failed for user %s", user.id)
        raise InvalidCredentials()
    if new_hash:
        user.password_hash = new_hash
        db.add(user); db.commit()
    return user


def _user_from_preauth(db: Session, tenant: Tenant, token: str) -> tuple[User, bool]:
    claims = decode_preauth(token)
    if not claims or claims.get("tenant_id") != tenant.id:
        raise InvalidCredentials()
    user = user_crud.get(db, int(claims["sub"]))
    if user is None or not user.is_active or user.tenant_id != tenant.id or not user.two_factor_enabled:
        raise InvalidCredentials()
    return user, bool(claims.get("rm"))


# ---------------------------------------------------------------------------
# login / register
# ---------------------------------------------------------------------------
def login(
    db: Session,
    tenant: Tenant,
    *,
    email: Optional[str],
    password: Optional[str],
    device: DeviceInfo,
    two_factor_token: Optional[str] = None,
    remember_me: bool = False,
    preauth_token: Optional[str] = None,
) -> Union[LoginGrant, TwoFactorChallenge]:
    """Authenticate and open a device session.

    Returns a :class:`TwoFactorChallenge` when the password is right but the
    account needs a TOTP code. A retry that carries the challenge's
    ``preauth_token`` skips the password check; the code is always verified.

    Raises :class:`EmailNotVerified` *after* the session is created, with the
    grant attached, so the caller can still hand out the restricted tokens.
    """
    if preauth_token:
        user, marker_rm = _user_from_preauth(db, tenant, preauth_token)
        remember_me = remember_me or marker_rm
        if not verify_totp(user.two_factor_secret, two_factor_token):
            logger.info("2FA failed for user %s", user.id)
            raise InvalidTwoFactorCode()
    else:
        user = _check_password(db, tenant, email, password)
        if user.two_factor_enabled:
            if not two_factor_token:
                return TwoFactorChallenge(
                    pre_auth_token=create_preauth_token(user_id=user.id, tenant_id=tenant.id, remember_me=remember_me)
                )
            if not verify_totp(user.two_factor_secret, two_factor_token):
                logger.info("2FA failed for user %s", user.id)
                raise InvalidTwoFactorCode()

    grant = _issue(db, user, device, remember_me)
    logger.info("user %s logged in (session %s)", user.id, grant.session.id)
    if not user.email_verified:
        raise EmailNotVerified(
            "Please verify your email address before logging in.",
            details={"email": user.email},
            grant=grant,
        )
    return grant


def _start_verification(db: Session, user: User, mailer: Mailer) -> None:
    token = new_verification_token()
    now = utcnow()
    user.email_verification_token = digest(token)
    user.email_verification_expires = now + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS)
    user.last_verification_email_sent = now
    db.add(user); db.commit(); db.refresh(user)
    try:
        mailer.send_verification(user.email, token, user.first_name)
    except Exception:
        # conta já criada; o usuário pode pedir reenvio
        logger.exception("verification email to user %s failed", user.id)


def register(
    db: Session,
    tenant: Tenant,
    *,
    email: str,
    password: str,
    first_name: Optional[str],
    last_name: Optional[str],
    mailer: Mailer,
    confirm_password: Optional[str] = None,
) -> User:
    if confirm_password is not None and confirm_password != password:
        raise PasswordPolicyViolation("Passwords don't match.", details=["Passwords don't match"])
    ensure_password_policy(password)

    if user_crud.get_by_email(db, email, tenant.id) is not None:
        raise EmailAlreadyExists()
    try:
        user = user_crud.create(
            db,
            tenant_id=tenant.id,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
        )
    except IntegrityError as exc:
        db.rollback()
        raise EmailAlreadyExists() from exc

    logger.info("user %s registered in tenant %s", user.id, tenant.slug)
    _start_verification(db, user, mailer)
    return user


# ---------------------------------------------------------------------------
# e-mail verification
# ---------------------------------------------------------------------------
def verify_email(db: Session, token: str) -> User:
    if not token:
        raise InvalidVerificationToken()
    user = user_crud.get_by_verification_digest(db, digest(token))
    if user is None:
        raise InvalidVerificationToken()
    expires = as_utc(user.email_verification_expires)
    if expires is None or expires <= utcnow():
        raise InvalidVerificationToken("Verification token has expired.")

    user.email_verified = True
    user.email_verification_token = None
    user.email_verification_expires = None
    db.add(user); db.commit(); db.refresh(user)
    logger.info("user %s verified email", user.id)
    return user


def resend_verification(db: Session, tenant: Tenant, email: str, mailer: Mailer) -> None:
    user = user_crud.get_by_email(db, email, tenant.id)
    if user is None or not user.is_active:
        return
    if user.email_verified:
        raise EmailAlreadyVerified()

    last = as_utc(user.last_verification_email_sent)
    if last is not None:
        ready_at = last + timedelta(minutes=settings.VERIFICATION_RESEND_COOLDOWN_MINUTES)
        wait = int((ready_at - utcnow()).total_seconds())
        if wait > 0:
            raise RateLimited("Please wait before requesting another verification email.", retry_after=wait)

    _start_verification(db, user, mailer)


# ---------------------------------------------------------------------------
# account
# ---------------------------------------------------------------------------
def change_password(
    db: Session,
    user: User,
    *,
    current_password: str,
    new_password: str,
    current_session_id: Optional[int],
    confirm_password: Optional[str] = None,
) -> int:
    """Swap the password and revoke every other device session (returns how many)."""
    ok, _ = verify_and_maybe_upgrade(current_password, user.password_hash)
    if not ok:
        raise IncorrectCurrentPassword()
    if confirm_password is not None and confirm_password != new_password:
        raise PasswordPolicyViolation("Passwords don't match.", details=["Passwords don't match"])
    ensure_password_policy(new_password)

    user.password_hash = hash_password(new_password)
    db.add(user); db.commit()
    revoked = session_store.revoke_all_for_user(db, user.id, except_session_id=current_session_id)
    logger.info("user %s changed password, %s other session(s) revoked", user.id, revoked)
    return revoked


def update_profile(db: Session, user: User, *, first_name: str, last_name: str, email: str,
                   mailer: Mailer) -> User:
    new_email = normalize_email(email)
    email_changed = new_email != user.email
    if email_changed:
        other = user_crud.get_by_email(db, new_email, user.tenant_id)
        if other is not None and other.id != user.id:
            raise EmailAlreadyExists()

    user.first_name = first_name
    user.last_name = last_name
    if email_changed:
        user.email = new_email
        user.email_verified = False
    db.add(user); db.commit(); db.refresh(user)

    if email_changed:
        _start_verification(db, user, mailer)
    return user


def set_menu_preference(db: Session, user: User, menu_expanded: bool) -> User:
    return user_crud.update(db, user, {"menu_expanded": bool(menu_expanded)})


def deactivate_account(db: Session, user: User) -> None:
    user.is_active = False
    db.add(user); db.commit()
    session_store.revoke_all_for_user(db, user.id)
    logger.info("user %s deactivated", user.id)


# ---------------------------------------------------------------------------
# 2FA
# ---------------------------------------------------------------------------
def setup_two_factor(db: Session, user: User) -> TwoFactorSetup:
    if user.two_factor_enabled:
        raise TwoFactorAlreadyEnabled()
    secret = generate_totp_secret()
    user.two_factor_secret = secret
    db.add(user); db.commit()
    uri = get_totp_uri(secret, user.email)
    return TwoFactorSetup(secret=secret, otpauth_url=uri, qr_code=generate_qr_code_base64(uri))


def enable_two_factor(db: Session, user: User, code: str) -> User:
    if user.two_factor_enabled:
        raise TwoFactorAlreadyEnabled()
    if not user.two_factor_secret:
        raise TwoFactorSetupRequired()
    if not verify_totp(user.two_factor_secret, code):
        raise InvalidTwoFactorCode()
    user.two_factor_enabled = True
    db.add(user); db.commit(); db.refresh(user)
    logger.info("2FA enabled for user %s", user.id)
    return user


def disable_two_factor(db: Session, user: User, code: str) -> User:
    if not user.two_factor_enabled:
        raise TwoFactorNotEnabled()
    if not verify_totp(user.two_factor_secret, code):
        raise InvalidTwoFactorCode()
    user.two_factor_enabled = False
    user.two_factor_secret = None
    db.add(user); db.commit(); db.refresh(user)
    logger.info("2FA disabled for user %s", user.id)
    return user
