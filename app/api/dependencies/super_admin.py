"""Platform operator access."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select

from app.api.dependencies.auth import CurrentUser, DbSession
from app.models.membership import Membership, MembershipRole
from app.models.user import User


async def require_super_admin(request: Request, user: CurrentUser, db: DbSession) -> User:
    """Allow only users holding an active SUPER_ADMIN membership."""
    membership_id = await db.scalar(
        select(Membership.id)
        .where(
            Membership.user_id == user.id,
            Membership.role == MembershipRole.SUPER_ADMIN,
            Membership.is_active.is_(True),
        )
        .limit(1)
    )
    if membership_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso restrito a Super Admin",
        )

    request.state.user_role = MembershipRole.SUPER_ADMIN
    return user


SuperAdmin = Annotated[User, Depends(require_super_admin)]
