from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy import select
from tenant_auth.crud.base import CRUDBase
from tenant_auth.models.user import USER_ROLES, User


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class CRUDUser(CRUDBase[User]):
    def create(self, db: Session, *, tenant_id: int, email: str, password_hash: str,
               first_name: Optional[str] = None, last_name: Optional[str] = None,
               role: str = "Employee", email_verified: bool = False) -> User:
        if role not in USER_ROLES:
            raise ValueError(f"unknown role: {role!r}")
        user = User(
            tenant_id=tenant_id,
            email=normalize_email(email),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=True,
            email_verified=email_verified,
            two_factor_enabled=False,
            menu_expanded=False,
        )
        db.add(user); db.commit(); db.refresh(user)
        return user

    def get_by_email(self, db: Session, email: str, tenant_id: int) -> User | None:
        return db.execute(
            select(User).where(User.email == normalize_email(email), User.tenant_id == tenant_id)
        ).scalar_one_or_none()

    def get_by_verification_digest(self, db: Session, token_digest: str) -> User | None:
        return db.execute(
            select(User).where(User.email_verification_token == token_digest)
        ).scalar_one_or_none()


user_crud = CRUDUser(User)
