# tenant_auth/core/totp.py
"""
TOTP (RFC 6238) helpers, compatible with Google Authenticator, Authy, Aegis.

- 6-digit codes
- 30-second time step, one step of drift tolerated
- Base32 secrets
"""
import base64
import io

import pyotp
import qrcode

from tenant_auth.core.config import settings


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def get_totp_uri(secret: str, account: str, issuer: str | None = None) -> str:
    """otpauth://totp/{issuer}:{account}?secret=...&issuer=..."""
    return pyotp.TOTP(secret).provisioning_uri(name=account, issuer_name=issuer or settings.TOTP_ISSUER)


def generate_qr_code_base64(uri: str) -> str:
    """PNG em base64, pronto para <img src="data:image/png;base64,...">."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("utf-8")


def verify_totp(secret: str | None, code: str | None) -> bool:
    if not secret or not code:
        return False

    code = code.strip().replace(" ", "")
    if len(code) != 6 or not code.isdigit():
        return False

    return pyotp.TOTP(secret).verify(code, valid_window=1)


def get_current_totp(secret: str) -> str:
    """Current code for ``secret`` (tests and local tooling)."""
    return pyotp.TOTP(secret).now()
