# tenant_auth/api/v1/two_factor.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tenant_auth.api.deps import AuthContext, get_db, require_verified
from tenant_auth.schemas.auth import TwoFactorCode, TwoFactorSetupOut
from tenant_auth.services import issuer
from tenant_auth.services.issuer import public_user

router = APIRouter()


@router.post("/setup")
def setup(ctx: AuthContext = Depends(require_verified), db: Session = Depends(get_db)):
    result = issuer.setup_two_factor(db, ctx.user)
    return TwoFactorSetupOut(
        secret=result.secret,
        otpauth_url=result.otpauth_url,
        qr_code=result.qr_code,
    ).model_dump(by_alias=True)


@router.post("/enable")
def enable(payload: TwoFactorCode, ctx: AuthContext = Depends(require_verified), db: Session = Depends(get_db)):
    user = issuer.enable_two_factor(db, ctx.user, payload.token)
    return {"message": "Two-factor authentication enabled", "user": public_user(user)}


@router.post("/disable")
def disable(payload: TwoFactorCode, ctx: AuthContext = Depends(require_verified), db: Session = Depends(get_db)):
    user = issuer.disable_two_factor(db, ctx.user, payload.token)
    return {"message": "Two-factor authentication disabled", "user": public_user(user)}
