# tenant_auth/db/init_db.py
from sqlalchemy import select
from sqlalchemy.orm import Session

from tenant_auth.core.config import settings
from tenant_auth.core.security_password import hash_password
from tenant_auth.crud.user import user_crud
from tenant_auth.models.tenant import Tenant

DEMO_ADMIN_EMAIL = "admin@example.com"
DEMO_ADMIN_PASSWORD = "Admin123!"


def init_db(db: Session) -> None:
    tenant = db.scalar(select(Tenant).where(Tenant.slug == settings.DEFAULT_TENANT))
    if not tenant:
        tenant = Tenant(name="Tenant Demo", slug=settings.DEFAULT_TENANT)
        db.add(tenant); db.commit(); db.refresh(tenant)

    if user_crud.get_by_email(db, DEMO_ADMIN_EMAIL, tenant.id) is None:
        user_crud.create(
            db,
            tenant_id=tenant.id,
            email=DEMO_ADMIN_EMAIL,
            password_hash=hash_password(DEMO_ADMIN_PASSWORD),
            first_name="Admin",
            last_name="Demo",
            role="Owner",
            email_verified=True,
        )
