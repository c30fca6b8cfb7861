# tenant_auth/core/logging.py
import logging
import logging.config
import re

from tenant_auth.core.config import settings

_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\b")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+[A-Za-z0-9_\-\.=]+")


def redact(text: str) -> str:
    text = _BEARER_RE.sub("Bearer ***", text)
    return _JWT_RE.sub("***", text)


class RedactTokensFilter(logging.Filter):
    """Nunca deixa JWT/bearer vazar para os logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except Exception:
            return True
        clean = redact(msg)
        if clean != msg:
            record.msg = clean
            record.args = None
        return True


def setup_logging(level: str | None = None) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"redact": {"()": RedactTokensFilter}},
            "formatters": {
                "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["redact"],
                },
            },
            "root": {"handlers": ["console"], "level": (level or settings.LOG_LEVEL).upper()},
        }
    )
