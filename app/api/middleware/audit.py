"""
Audit log middleware.

Records every successful mutation (POST, PUT, PATCH, DELETE) in the
audit_logs table. Auditing is best effort: a failure here is logged and
never changes the response.
"""

import json
import logging
import re
import time
from collections.abc import Callable
from typing import Any, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from app.core.config import settings
from app.core.database import get_session_factory
from app.models.audit import AuditAction, AuditLog

logger = logging.getLogger(__name__)

METHOD_TO_ACTION: dict[str, AuditAction] = {
    "POST": AuditAction.CREATE,
    "PUT": AuditAction.UPDATE,
    "PATCH": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
}

EXCLUDED_ROUTES: tuple[str, ...] = (
    "/health",
    "/api/v1/auth/login",
    "/api/v1/auth/refresh",
)

# First path segment -> audited entity name
RESOURCE_ENTITIES: dict[str, str] = {
    "auth": "Auth",
    "users": "User",
    "organizations": "Organization",
    "patients": "Patient",
    "consultations": "Consultation",
    "availability": "Availability",
    "medical-records": "MedicalRecord",
    "prescriptions": "Prescription",
    "products": "CannabisProduct",
    "anvisa-reports": "AnvisaReport",
    "billing": "Subscription",
    "patient-portal": "PatientDocument",
    "legal-terms": "LegalTerm",
}

SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "passwordHash",
        "password_hash",
        "currentPassword",
        "current_password",
        "newPassword",
        "new_password",
        "token",
        "refreshToken",
        "refresh_token",
        "tempToken",
        "temp_token",
        "code",
        "secret",
        "cpf",
        "cpfEncrypted",
        "cpf_encrypted",
    }
)

REDACTED = "[REDACTED]"

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def format_entity_name(segment: str) -> str:
    """medical-records -> MedicalRecord, with one trailing "s" removed."""
    if segment in RESOURCE_ENTITIES:
        return RESOURCE_ENTITIES[segment]
    name = "".join(part[:1].upper() + part[1:] for part in segment.split("-"))
    return name[:-1] if name.endswith("s") else name


def extract_entity(path: str) -> tuple[Optional[str], Optional[str]]:
    """Entity name and, when the second segment is a UUID, the entity id."""
    prefix = f"{settings.API_V1_PREFIX}/"
    clean = path.split("?")[0]
    if clean.startswith(prefix):
        clean = clean[len(prefix) :]
    parts = [part for part in clean.split("/") if part]

    if not parts:
        return None, None

    entity = format_entity_name(parts[0])
    entity_id = parts[1] if len(parts) > 1 and UUID_RE.match(parts[1]) else None
    return entity, entity_id


def sanitize_data(data: Any) -> Any:
    """Replace sensitive values with a marker, recursing into nested objects."""
    if isinstance(data, dict):
        return {
            key: REDACTED if key in SENSITIVE_FIELDS and value else sanitize_data(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize_data(item) for item in data]
    return data


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def _parse_json(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return None


def _response_entity_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    if payload.get("id"):
        return str(payload["id"])
    data = payload.get("data")
    if isinstance(data, dict) and data.get("id"):
        return str(data["id"])
    return None


class AuditLogMiddleware(BaseHTTPMiddleware):
    """
    Write an AuditLog row for each successful mutating request.

    User and organization come from request.state, filled by the auth and
    tenant dependencies.
    """

    def __init__(self, app: ASGIApp, enabled: bool = True) -> None:
        super().__init__(app)
        self._enabled = enabled

    def _should_audit(self, request: Request) -> bool:
        if not self._enabled or request.method not in METHOD_TO_ACTION:
            return False
        url = str(request.url)
        return not any(route in url for route in EXCLUDED_ROUTES)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        if not self._should_audit(request):
            return await call_next(request)

        start_time = time.perf_counter()
        request_body = b""
        if request.headers.get("content-type", "").startswith("application/json"):
            request_body = await request.body()

        response = await call_next(request)

        if response.status_code >= 400:
            logger.warning(
                f"Request failed: {request.method} {request.url.path} - {response.status_code}"
            )
            return response

        entity, entity_id = extract_entity(request.url.path)
        if entity is None:
            return response

        action = METHOD_TO_ACTION[request.method]

        if entity_id is None:
            # Buffer the body to read the created id, then hand it back unchanged
            response_body = b"".join([chunk async for chunk in response.body_iterator])
            response = Response(
                content=response_body,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type,
            )
            entity_id = _response_entity_id(_parse_json(response_body))

        if entity_id is None and action != AuditAction.CREATE:
            logger.debug(f"Audit skipped for {request.method} {request.url.path}: no entity id")
            return response

        try:
            await self._write(
                request,
                action=action,
                entity=entity,
                entity_id=entity_id or "unknown",
                body=_parse_json(request_body),
                duration_ms=int((time.perf_counter() - start_time) * 1000),
            )
        except Exception as e:
            logger.error(f"Audit log failed: {e}")

        return response

    async def _write(
        self,
        request: Request,
        action: AuditAction,
        entity: str,
        entity_id: str,
        body: Any,
        duration_ms: int,
    ) -> None:
        session_factory = get_session_factory(request)
        async with session_factory() as session:
            session.add(
                AuditLog(
                    user_id=getattr(request.state, "user_id", None),
                    organization_id=getattr(request.state, "organization_id", None),
                    action=action,
                    entity=entity,
                    entity_id=entity_id,
                    new_data=sanitize_data(body) if action != AuditAction.DELETE else None,
                    audit_metadata={
                        "duration": duration_ms,
                        "url": str(request.url.path)
                        + (f"?{request.url.query}" if request.url.query else ""),
                        "method": request.method,
                    },
                    ip_address=get_client_ip(request),
                    user_agent=request.headers.get("user-agent"),
                )
            )
            await session.commit()
