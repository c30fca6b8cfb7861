# tenant_auth/schemas/session.py
from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from tenant_auth.schemas.user import CamelModel


class SessionOut(CamelModel):
    id: int
    device_id: str
    device_name: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[str] = None
    created_at: Optional[datetime] = None
    last_used: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_current: bool = False


class SessionList(CamelModel):
    sessions: List[SessionOut]
