# tenant_auth/services/mailer.py
from __future__ import annotations

import logging
from typing import Optional, Protocol

from tenant_auth.core.config import settings

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send_verification(self, email: str, token: str, first_name: Optional[str] = None) -> None: ...


def verification_url(token: str) -> str:
    base = (settings.cors_origins or ["http://localhost:5173"])[0].rstrip("/")
    return f"{base}/verify-email?token={token}"


class LoggingMailer:
    """Sem SMTP configurado: o link sai no log (dev/local)."""

    def send_verification(self, email: str, token: str, first_name: Optional[str] = None) -> None:
        logger.info("verification email for %s: %s", email, verification_url(token))


default_mailer = LoggingMailer()


def get_mailer() -> Mailer:
    return default_mailer
