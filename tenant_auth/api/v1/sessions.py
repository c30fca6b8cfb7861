# tenant_auth/api/v1/sessions.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tenant_auth.api.deps import AuthContext, get_db, require_verified
from tenant_auth.core.errors import SessionNotFound
from tenant_auth.crud import device_session as session_store
from tenant_auth.schemas.session import SessionList, SessionOut

router = APIRouter()


def _session_out(row, current_id: int) -> SessionOut:
    return SessionOut(
        id=row.id,
        device_id=row.device_id,
        device_name=row.device_name,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
        location=row.location,
        created_at=row.created_at,
        last_used=row.last_used_at,
        expires_at=row.expires_at,
        is_current=row.id == current_id,
    )


@router.get("")
def list_sessions(ctx: AuthContext = Depends(require_verified), db: Session = Depends(get_db)):
    rows = session_store.list_active_for_user(db, ctx.user.id)
    return SessionList(sessions=[_session_out(r, ctx.session_id) for r in rows]).model_dump(by_alias=True, mode="json")


@router.delete("/{session_id}")
def revoke_session(session_id: int, ctx: AuthContext = Depends(require_verified), db: Session = Depends(get_db)):
    # só sessões do próprio usuário; de outro usuário responde 404 igual
    if not session_store.revoke(db, session_id, user_id=ctx.user.id):
        raise SessionNotFound()
    return {"message": "Session revoked", "current": session_id == ctx.session_id}


@router.delete("")
def revoke_other_sessions(ctx: AuthContext = Depends(require_verified), db: Session = Depends(get_db)):
    revoked = session_store.revoke_all_for_user(db, ctx.user.id, except_session_id=ctx.session_id)
    return {"message": "All other sessions revoked", "revokedSessions": revoked}
