# tenant_auth/core/security_password.py
from __future__ import annotations
import re
from typing import List, Tuple
from passlib.context import CryptContext

from tenant_auth.core.errors import PasswordPolicyViolation

pwd_context = CryptContext(
    schemes=["argon2", "bcrypt"],
    deprecated="auto",
    argon2__time_cost=2,
    argon2__memory_cost=19456,
    argon2__parallelism=1,
)

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_and_maybe_upgrade(plain: str, stored_hash: str) -> Tuple[bool, str | None]:
    ok = pwd_context.verify(plain, stored_hash)
    if not ok:
        return False, None
    if pwd_context.needs_update(stored_hash):
        return True, pwd_context.hash(plain)
    return True, None


def dummy_verify() -> None:
    """Gasta o mesmo tempo de um verify real (e-mail inexistente)."""
    pwd_context.dummy_verify()


def password_policy_errors(password: str) -> List[str]:
    errors: List[str] = []
    if not isinstance(password, str):
        return ["Password must be a string"]
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    return errors


def ensure_password_policy(password: str) -> None:
    errors = password_policy_errors(password)
    if errors:
        raise PasswordPolicyViolation(details=errors)
