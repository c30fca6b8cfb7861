# tenant_auth/api/v1/auth.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tenant_auth.api.deps import (
    AuthContext,
    get_auth_context,
    get_db,
    get_request_tenant,
    hit_email_bucket,
    parse_bearer,
    rate_limit,
    require_verified,
)
from tenant_auth.core.config import settings
from tenant_auth.core.device import DeviceInfo, device_from_request
from tenant_auth.core.errors import AuthError, EmailNotVerified
from tenant_auth.core.tokens import as_utc, decode_access, utcnow
from tenant_auth.models.tenant import Tenant
from tenant_auth.schemas.auth import (
    LoginRequest,
    RefreshRequest,
    ResendVerificationRequest,
    TwoFactorChallengeOut,
    VerifyEmailOut,
    tokens_payload,
)
from tenant_auth.schemas.user import (
    ChangePasswordRequest,
    MenuPreferenceOut,
    MenuPreferenceRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from tenant_auth.services import issuer
from tenant_auth.services import refresh as refresh_service
from tenant_auth.services.issuer import LoginGrant, TwoFactorChallenge, public_user
from tenant_auth.services.mailer import Mailer, get_mailer

router = APIRouter()

DEVICE_COOKIE_MAX_AGE = 365 * 24 * 3600


# ---------- cookies ----------
def set_session_cookies(response: Response, grant: LoginGrant, device: Optional[DeviceInfo] = None) -> None:
    max_age = max(0, int((as_utc(grant.session.expires_at) - utcnow()).total_seconds()))
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        grant.refresh_token,
        max_age=max_age,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/api/auth",
    )
    if device is not None:
        response.set_cookie(
            settings.DEVICE_COOKIE_NAME,
            device.device_id,
            max_age=DEVICE_COOKIE_MAX_AGE,
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite="lax",
            path="/",
        )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        settings.REFRESH_COOKIE_NAME,
        path="/api/auth",
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )


def _error_response(exc: AuthError, content: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=content or exc.to_dict(), headers=exc.headers)


# ---------- login / register ----------
@router.post("/login", dependencies=[Depends(rate_limit("login", "LOGIN_RATE_LIMIT"))])
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_request_tenant),
):
    hit_email_bucket("login", "LOGIN_RATE_LIMIT", tenant, payload.email)
    device = device_from_request(request)
    try:
        result = issuer.login(
            db,
            tenant,
            email=payload.email,
            password=payload.password,
            device=device,
            two_factor_token=payload.two_factor_token,
            remember_me=payload.remember_me,
            preauth_token=payload.pre_auth_token,
        )
    except EmailNotVerified as exc:
        # sessão criada, mas restrita: o front vai para /pending-verification
        content = {**tokens_payload(exc.grant, exc.message), **exc.to_dict()}
        resp = _error_response(exc, content)
        set_session_cookies(resp, exc.grant, device)
        return resp

    if isinstance(result, TwoFactorChallenge):
        return TwoFactorChallengeOut(pre_auth_token=result.pre_auth_token).model_dump(by_alias=True)

    set_session_cookies(response, result, device)
    return tokens_payload(result)


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("register", "REGISTER_RATE_LIMIT"))],
)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_request_tenant),
    mailer: Mailer = Depends(get_mailer),
):
    user = issuer.register(
        db,
        tenant,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        confirm_password=payload.confirm_password,
        mailer=mailer,
    )
    return {
        "message": "Registration successful! Please check your email to verify your account.",
        "user": public_user(user),
    }


# ---------- e-mail verification ----------
@router.get("/verify-email")
def verify_email(token: str = Query(...), db: Session = Depends(get_db)):
    issuer.verify_email(db, token)
    return VerifyEmailOut().model_dump(by_alias=True)


@router.post("/resend-verification", dependencies=[Depends(rate_limit("resend", "RESEND_RATE_LIMIT"))])
def resend_verification(
    payload: ResendVerificationRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_request_tenant),
    mailer: Mailer = Depends(get_mailer),
):
    hit_email_bucket("resend", "RESEND_RATE_LIMIT", tenant, payload.email)
    issuer.resend_verification(db, tenant, payload.email, mailer)
    return {"message": "If the account exists and is unverified, a verification email has been sent."}


# ---------- refresh / logout ----------
def _refresh_token_from(request: Request, payload: Optional[RefreshRequest]) -> Optional[str]:
    return request.cookies.get(settings.REFRESH_COOKIE_NAME) or (payload.refresh_token if payload else None)


@router.post("/refresh")
def refresh(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = Body(default=None),
    db: Session = Depends(get_db),
):
    device = device_from_request(request)
    try:
        grant = refresh_service.refresh(db, _refresh_token_from(request, payload), device)
    except AuthError as exc:
        resp = _error_response(exc)
        clear_session_cookie(resp)
        return resp
    set_session_cookies(response, grant)
    return tokens_payload(grant, "Token refreshed")


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = Body(default=None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db),
):
    session_id = user_id = None
    bearer = parse_bearer(authorization)
    if bearer:
        try:
            claims = decode_access(bearer)
            session_id, user_id = int(claims["sid"]), int(claims["sub"])
        except AuthError:
            # token vencido não impede o logout
            session_id = user_id = None
    refresh_service.logout(db, _refresh_token_from(request, payload), session_id=session_id, user_id=user_id)
    clear_session_cookie(response)
    return {"message": "Logged out successfully"}


@router.post("/logout-all")
def logout_all(response: Response, ctx: AuthContext = Depends(require_verified), db: Session = Depends(get_db)):
    revoked = refresh_service.logout_all(db, ctx.user.id)
    clear_session_cookie(response)
    return {"message": "Logged out from all devices", "revokedSessions": revoked}


# ---------- current user ----------
@router.get("/me")
def me(ctx: AuthContext = Depends(get_auth_context)):
    return {"user": public_user(ctx.user)}


@router.patch("/menu-preference")
def menu_preference(
    payload: MenuPreferenceRequest,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    user = issuer.set_menu_preference(db, ctx.user, payload.menu_expanded)
    return MenuPreferenceOut(menu_expanded=user.menu_expanded).model_dump(by_alias=True)


@router.put("/profile")
def update_profile(
    payload: UpdateProfileRequest,
    ctx: AuthContext = Depends(require_verified),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    user = issuer.update_profile(
        db, ctx.user,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        mailer=mailer,
    )
    return {"message": "Profile updated successfully", "user": public_user(user)}


@router.put("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    ctx: AuthContext = Depends(require_verified),
    db: Session = Depends(get_db),
):
    revoked = issuer.change_password(
        db, ctx.user,
        current_password=payload.current_password,
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
        current_session_id=ctx.session_id,
    )
    return {"message": "Password changed successfully", "revokedSessions": revoked}


@router.delete("/account")
def delete_account(response: Response, ctx: AuthContext = Depends(require_verified), db: Session = Depends(get_db)):
    issuer.deactivate_account(db, ctx.user)
    clear_session_cookie(response)
    return {"message": "Account deleted"}
