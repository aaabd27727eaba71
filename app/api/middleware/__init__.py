"""HTTP middleware."""

from app.api.middleware.audit import AuditLogMiddleware

__all__ = ["AuditLogMiddleware"]
