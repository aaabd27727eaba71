"""Role-based access control on top of the tenant context."""

from typing import Any, Callable, Coroutine

from fastapi import HTTPException, status

from app.api.dependencies.tenant import Tenant, TenantContext
from app.models.membership import MembershipRole

# Higher level grants the permissions of every lower one
ROLE_HIERARCHY: dict[MembershipRole, int] = {
    MembershipRole.OWNER: 100,
    MembershipRole.ADMIN: 80,
    MembershipRole.DOCTOR: 60,
    MembershipRole.SECRETARY: 40,
    MembershipRole.VIEWER: 20,
}

CLINICAL_STAFF = (MembershipRole.OWNER, MembershipRole.ADMIN, MembershipRole.DOCTOR)
FRONT_DESK = (*CLINICAL_STAFF, MembershipRole.SECRETARY)
MANAGERS = (MembershipRole.OWNER, MembershipRole.ADMIN)


def has_role(role: MembershipRole, allowed: tuple[MembershipRole, ...]) -> bool:
    """
    True when `role` is one of `allowed` or ranks above one of them.

    Roles outside the hierarchy (PATIENT, SUPER_ADMIN) only match exactly.
    """
    if role in allowed:
        return True
    level = ROLE_HIERARCHY.get(role)
    if level is None:
        return False
    return any(
        required in ROLE_HIERARCHY and level >= ROLE_HIERARCHY[required] for required in allowed
    )


def require_roles(
    *roles: MembershipRole,
) -> Callable[[TenantContext], Coroutine[Any, Any, TenantContext]]:
    """
    Dependency factory restricting a route to the given roles.

    Usage:
        @router.patch("/current")
        async def update(tenant: Annotated[TenantContext, Depends(require_roles(MembershipRole.OWNER))]):
            ...
    """

    async def check_roles(tenant: Tenant) -> TenantContext:
        if roles and not has_role(tenant.role, roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Acesso negado. Roles permitidas: {', '.join(r.value for r in roles)}",
            )
        return tenant

    return check_roles
