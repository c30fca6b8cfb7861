# tenant_auth/core/device.py
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request

from tenant_auth.core.config import settings

_DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{8,64}$")


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str
    device_name: str
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[str] = None


def _browser_guess(ua: str) -> str:
    low = ua.lower()
    if "edg/" in low:
        return "Edge"
    if "opr/" in low or "opera" in low:
        return "Opera"
    if "firefox" in low:
        return "Firefox"
    if "chrome" in low or "crios" in low:
        return "Chrome"
    if "safari" in low:
        return "Safari"
    if "python-httpx" in low or "testclient" in low:
        return "API client"
    return "Unknown Browser"


def _os_guess(ua: str) -> str:
    low = ua.lower()
    if "iphone" in low or "ipad" in low:
        return "iOS"
    if "android" in low:
        return "Android"
    if "windows" in low:
        return "Windows"
    if "mac os" in low or "macintosh" in low:
        return "macOS"
    if "linux" in low:
        return "Linux"
    return "Unknown OS"


def device_name_for(user_agent: str) -> str:
    ua = (user_agent or "").strip()
    if not ua:
        return "Unknown Device"
    return f"{_browser_guess(ua)} on {_os_guess(ua)}"


def client_ip(request: Request) -> str:
    fwd = request.headers.get("x-forwarded-for")
    if fwd:
        return fwd.split(",")[0].strip()[:64]
    return (request.client.host if request.client else "unknown")[:64]


def device_from_request(request: Request) -> DeviceInfo:
    ua = (request.headers.get("user-agent") or "")[:255]
    device_id = request.cookies.get(settings.DEVICE_COOKIE_NAME) or request.headers.get("x-device-id") or ""
    if not _DEVICE_ID_RE.match(device_id):
        device_id = uuid.uuid4().hex  # gerado uma única vez; volta no cookie
    return DeviceInfo(
        device_id=device_id,
        device_name=device_name_for(ua),
        user_agent=ua or None,
        ip_address=client_ip(request),
    )
