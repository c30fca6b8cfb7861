# tenant_auth/core/config.py
import os
from typing import ClassVar, List
from pydantic import BaseModel, Field


def _default_database_url() -> str:
    data_dir = os.path.abspath(os.getenv("DATA_DIR", "./data"))
    os.makedirs(data_dir, exist_ok=True)
    return os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(data_dir, 'auth.db')}")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    # Constante (não vira campo Pydantic)
    DATA_DIR: ClassVar[str] = os.path.abspath(os.getenv("DATA_DIR", "./data"))

    DATABASE_URL: str = Field(default_factory=_default_database_url)
    JWT_SECRET: str = Field(default_factory=lambda: os.getenv("JWT_SECRET", "CHANGE_ME_SUPER_SECRET"))
    SESSION_SECRET: str = Field(default_factory=lambda: os.getenv("SESSION_SECRET", "CHANGE_ME_ANOTHER_SECRET"))
    FRONTEND_URL: str = Field(default_factory=lambda: os.getenv("FRONTEND_URL", "http://localhost:5173"))
    ALGORITHM: str = "HS256"

    # token lifetimes
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default_factory=lambda: int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15")))
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default_factory=lambda: int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7")))
    REMEMBER_ME_EXPIRE_DAYS: int = Field(default_factory=lambda: int(os.getenv("REMEMBER_ME_EXPIRE_DAYS", "30")))
    PREAUTH_EXPIRE_MINUTES: int = Field(default_factory=lambda: int(os.getenv("PREAUTH_EXPIRE_MINUTES", "5")))
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = Field(default_factory=lambda: int(os.getenv("EMAIL_VERIFICATION_EXPIRE_HOURS", "24")))
    VERIFICATION_RESEND_COOLDOWN_MINUTES: int = Field(default_factory=lambda: int(os.getenv("VERIFICATION_RESEND_COOLDOWN_MINUTES", "5")))

    # tenancy / cookies
    DEFAULT_TENANT: str = Field(default_factory=lambda: os.getenv("DEFAULT_TENANT", "demo"))
    COOKIE_SECURE: bool = Field(default_factory=lambda: _env_bool("COOKIE_SECURE", "1"))
    REFRESH_COOKIE_NAME: str = Field(default_factory=lambda: os.getenv("REFRESH_COOKIE_NAME", "refreshToken"))
    DEVICE_COOKIE_NAME: str = Field(default_factory=lambda: os.getenv("DEVICE_COOKIE_NAME", "deviceId"))

    # throttling (tentativas por janela)
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default_factory=lambda: int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900")))
    LOGIN_RATE_LIMIT: int = Field(default_factory=lambda: int(os.getenv("LOGIN_RATE_LIMIT", "20")))
    REGISTER_RATE_LIMIT: int = Field(default_factory=lambda: int(os.getenv("REGISTER_RATE_LIMIT", "10")))
    RESEND_RATE_LIMIT: int = Field(default_factory=lambda: int(os.getenv("RESEND_RATE_LIMIT", "5")))

    # housekeeping
    AUTO_MIGRATE: bool = Field(default_factory=lambda: _env_bool("AUTO_MIGRATE", "1"))
    SESSION_RETENTION_DAYS: int = Field(default_factory=lambda: int(os.getenv("SESSION_RETENTION_DAYS", "30")))
    SESSION_PURGE_INTERVAL_HOURS: int = Field(default_factory=lambda: int(os.getenv("SESSION_PURGE_INTERVAL_HOURS", "24")))

    LOG_LEVEL: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    TOTP_ISSUER: str = Field(default_factory=lambda: os.getenv("TOTP_ISSUER", "SecureAuth"))

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.FRONTEND_URL.split(",") if o.strip()]


settings = Settings()
