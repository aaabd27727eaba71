"""Structured logging configuration."""

import logging
import re
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from app.core.config import settings

REDACTED = "***REDACTED***"

# 123.456.789-09 or 12345678909
CPF_PATTERN = re.compile(r"\b\d{3}\.?\d{3}\.?\d{3}-?\d{2}\b")


def mask_cpf(text: str) -> str:
    """Replace CPF numbers in free text, keeping the last two digits."""
    return CPF_PATTERN.sub(lambda m: f"***.***.***-{m.group(0)[-2:]}", text)


class SanitizingFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that redacts patient data and credentials."""

    SENSITIVE_KEYS = (
        "password",
        "token",
        "secret",
        "api_key",
        "authorization",
        "cpf",
        "patient_name",
        "phone",
        "email",
        "birth_date",
        "address",
    )
    EXACT_KEYS = ("code", "otp")

    def _sanitize(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: REDACTED if self._is_sensitive(key) else self._sanitize(item)
                for key, item in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self._sanitize(item) for item in value]
        if isinstance(value, str):
            return mask_cpf(value)
        return value

    def _is_sensitive(self, key: str) -> bool:
        lowered = key.lower()
        if lowered in self.EXACT_KEYS:
            return True
        return any(sensitive in lowered for sensitive in self.SENSITIVE_KEYS)

    def process_log_record(self, log_record: dict[str, Any]) -> dict[str, Any]:
        sanitized = self._sanitize(log_record)
        sanitized["service"] = settings.APP_NAME
        sanitized["environment"] = settings.APP_ENV
        sanitized["version"] = settings.APP_VERSION
        return sanitized


class PlainSanitizingFormatter(logging.Formatter):
    """Human-readable development output with CPF masking."""

    def format(self, record: logging.LogRecord) -> str:
        return mask_cpf(super().format(record))


def setup_logging() -> logging.Logger:
    """
    Configure the root logger.

    JSON lines on stdout unless LOG_JSON is false. Third-party loggers are
    kept at WARNING except SQLAlchemy when DB_ECHO is on.
    """
    logger = logging.getLogger()
    level = logging.DEBUG if settings.APP_DEBUG else settings.LOG_LEVEL.upper()
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if settings.LOG_JSON:
        formatter: logging.Formatter = SanitizingFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    else:
        formatter = PlainSanitizingFormatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "arq.jobs", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DB_ECHO else logging.WARNING)

    return logger
