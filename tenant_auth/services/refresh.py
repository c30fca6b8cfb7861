# tenant_auth/services/refresh.py
"""Refresh-token rotation and logout.

The refresh token is opaque; only its fingerprint is stored. Every successful
refresh swaps the fingerprint on the same row with a compare-and-swap, so a
token can be redeemed at most once.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from tenant_auth.core.device import DeviceInfo
from tenant_auth.core.errors import SessionExpired, SessionInvalid, SessionMalformed
from tenant_auth.core.tokens import as_utc, is_well_formed_refresh, new_refresh_token, refresh_expiry, utcnow
from tenant_auth.crud import device_session as session_store
from tenant_auth.crud.user import user_crud
from tenant_auth.services.issuer import LoginGrant, access_ttl_seconds, access_token_for

logger = logging.getLogger(__name__)


def refresh(db: Session, token: Optional[str], device: Optional[DeviceInfo] = None) -> LoginGrant:
    if not is_well_formed_refresh(token):
        raise SessionMalformed()

    row = session_store.find_by_token(db, token)
    if row is None:
        logger.info("refresh with unknown or revoked token")
        raise SessionInvalid()
    if as_utc(row.expires_at) <= utcnow():
        raise SessionExpired()

    user = user_crud.get(db, row.user_id)
    if user is None or not user.is_active:
        session_store.revoke(db, row.id)
        raise SessionInvalid()

    new_token = new_refresh_token()
    if not session_store.rotate(db, row.id, token, new_token, refresh_expiry(row.remember_me), device):
        # outra requisição rotacionou (ou revogou) primeiro
        raise SessionInvalid()

    db.refresh(row)
    return LoginGrant(
        access_token=access_token_for(user, row),
        refresh_token=new_token,
        expires_in=access_ttl_seconds(),
        user=user,
        session=row,
    )


def logout(db: Session, token: Optional[str] = None, session_id: Optional[int] = None,
           user_id: Optional[int] = None) -> bool:
    """Idempotent; unknown tokens and already revoked sessions are not errors."""
    if is_well_formed_refresh(token):
        row = session_store.find_by_token(db, token)
        if row is not None:
            return session_store.revoke(db, row.id)
    if session_id is not None:
        return session_store.revoke(db, session_id, user_id=user_id)
    return False


def logout_all(db: Session, user_id: int) -> int:
    return session_store.revoke_all_for_user(db, user_id)
