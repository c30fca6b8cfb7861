# tenant_auth/crud/device_session.py
"""Session store: the only code that writes ``device_sessions`` rows.

Rows are soft-expired. Revocation flips ``is_active`` and stamps
``revoked_at``; expiry is checked against ``expires_at`` at read time. Rows are
physically deleted only by :func:`purge_expired` once they have been dead for
the retention window.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from tenant_auth.core.device import DeviceInfo
from tenant_auth.core.tokens import fingerprint, utcnow
from tenant_auth.models.device_session import DeviceSession
from tenant_auth.models.user import User

logger = logging.getLogger(__name__)


def create(db: Session, user: User, token: str, expires_at: datetime, device: DeviceInfo,
           remember_me: bool = False) -> DeviceSession:
    now = utcnow()
    row = DeviceSession(
        user_id=user.id,
        tenant_id=user.tenant_id,
        token_hash=fingerprint(token),
        device_id=device.device_id,
        device_name=device.device_name,
        user_agent=device.user_agent,
        ip_address=device.ip_address,
        location=device.location,
        remember_me=remember_me,
        created_at=now,
        expires_at=expires_at,
        last_used_at=now,
        is_active=True,
    )
    db.add(row); db.commit(); db.refresh(row)
    logger.info("session %s created for user %s (%s)", row.id, user.id, device.device_name)
    return row


def find_by_token(db: Session, token: str) -> Optional[DeviceSession]:
    """Active row holding ``token``. Expiry is left to the caller to classify."""
    return db.execute(
        select(DeviceSession).where(
            DeviceSession.token_hash == fingerprint(token),
            DeviceSession.is_active.is_(True),
        )
    ).scalar_one_or_none()


def rotate(db: Session, session_id: int, old_token: str, new_token: str, new_expiry: datetime,
           device: Optional[DeviceInfo] = None) -> bool:
    """Compare-and-swap the token of one row.

    Succeeds only while the row still holds ``old_token``, is active and has
    not expired. Exactly one of several concurrent callers presenting the same
    token gets ``True``; a revocation committed first makes every caller lose.
    """
    now = utcnow()
    values = {
        "token_hash": fingerprint(new_token),
        "expires_at": new_expiry,
        "last_used_at": now,
    }
    if device is not None:
        values["user_agent"] = device.user_agent
        values["ip_address"] = device.ip_address

    result = db.execute(
        update(DeviceSession)
        .where(
            DeviceSession.id == session_id,
            DeviceSession.token_hash == fingerprint(old_token),
            DeviceSession.is_active.is_(True),
            DeviceSession.expires_at > now,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    won = result.rowcount == 1
    if not won:
        logger.warning("rotation lost for session %s", session_id)
    return won


def revoke(db: Session, session_id: int, user_id: Optional[int] = None) -> bool:
    stmt = update(DeviceSession).where(DeviceSession.id == session_id, DeviceSession.is_active.is_(True))
    if user_id is not None:
        stmt = stmt.where(DeviceSession.user_id == user_id)
    result = db.execute(
        stmt.values(is_active=False, revoked_at=utcnow()).execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info("session %s revoked", session_id)
    return result.rowcount > 0


def revoke_all_for_user(db: Session, user_id: int, except_session_id: Optional[int] = None) -> int:
    stmt = update(DeviceSession).where(DeviceSession.user_id == user_id, DeviceSession.is_active.is_(True))
    if except_session_id is not None:
        stmt = stmt.where(DeviceSession.id != except_session_id)
    result = db.execute(
        stmt.values(is_active=False, revoked_at=utcnow()).execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("revoked %s session(s) for user %s", result.rowcount, user_id)
    return result.rowcount


def list_active_for_user(db: Session, user_id: int) -> List[DeviceSession]:
    return list(
        db.scalars(
            select(DeviceSession)
            .where(
                DeviceSession.user_id == user_id,
                DeviceSession.is_active.is_(True),
                DeviceSession.expires_at > utcnow(),
            )
            .order_by(DeviceSession.last_used_at.desc(), DeviceSession.id.desc())
        ).all()
    )


def purge_expired(db: Session, retention_days: int) -> int:
    cutoff = utcnow() - timedelta(days=retention_days)
    result = db.execute(
        delete(DeviceSession)
        .where(
            or_(
                DeviceSession.expires_at < cutoff,
                (DeviceSession.is_active.is_(False)) & (DeviceSession.revoked_at < cutoff),
            )
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info("purged %s dead session(s)", result.rowcount)
    return result.rowcount
