from sqlalchemy.orm import Session
from sqlalchemy import select
from tenant_auth.core.errors import TenantNotFound
from tenant_auth.models.tenant import Tenant


def resolve_tenant(db: Session, tenant_slug: str) -> Tenant:
    tenant = db.execute(select(Tenant).where(Tenant.slug == (tenant_slug or "").strip().lower())).scalar_one_or_none()
    if not tenant:
        raise TenantNotFound()
    return tenant
