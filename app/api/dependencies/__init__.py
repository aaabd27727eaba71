"""API dependencies."""

from app.api.dependencies.auth import CurrentUser, DbSession, get_current_user
from app.api.dependencies.roles import require_roles
from app.api.dependencies.subscription import require_subscription
from app.api.dependencies.super_admin import SuperAdmin, require_super_admin
from app.api.dependencies.tenant import Tenant, TenantContext, get_tenant

__all__ = [
    "CurrentUser",
    "DbSession",
    "SuperAdmin",
    "Tenant",
    "TenantContext",
    "get_current_user",
    "get_tenant",
    "require_roles",
    "require_subscription",
    "require_super_admin",
]
