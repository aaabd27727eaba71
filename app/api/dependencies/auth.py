"""Authentication dependencies for API endpoints."""

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import TokenError, decode_token
from app.models.user import User

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    db: DbSession,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> User:
    """
    Resolve the caller from the bearer access token.

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired, of the
            wrong type, or the user no longer exists or is inactive
    """
    if credentials is None:
        raise _unauthorized("Não autenticado")

    try:
        payload = decode_token(credentials.credentials)
        user_id = UUID(payload["sub"])
    except (TokenError, ValueError) as e:
        logger.debug(f"Rejected access token: {e}")
        raise _unauthorized("Token inválido") from e

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise _unauthorized("Usuário não encontrado")

    request.state.user_id = user.id
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
