# Carrega módulos para registrar tabelas no metadata:
from tenant_auth.db.base import Base  # noqa: F401
from tenant_auth.models.tenant import Tenant  # noqa: F401
from tenant_auth.models.user import User  # noqa: F401
from tenant_auth.models.device_session import DeviceSession  # noqa: F401

__all__ = ["Base", "Tenant", "User", "DeviceSession"]
