import uuid

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from rentline.core.database import get_db
from rentline.core.security import decode_token
from rentline.services.tenancy import OrgScope

_bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_organization_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> uuid.UUID:
    """Resolve the caller's active organization from the access token.

    The identity service puts the active organization in the ``org`` claim;
    membership was checked when the token was issued, so it is trusted here.
    """
    token = credentials.credentials if credentials else request.cookies.get("access_token")
    if not token:
        raise _unauthorized("Not authenticated")

    payload = decode_token(token)
    if payload is None or payload.get("type", "access") != "access":
        raise _unauthorized("Invalid or expired token")

    org = payload.get("org")
    if not org:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a member of any organization",
        )
    try:
        return uuid.UUID(str(org))
    except ValueError:
        raise _unauthorized("Invalid or expired token")


async def get_scope(
    organization_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
) -> OrgScope:
    """Request-scoped store access for the caller's organization."""
    return OrgScope(db, organization_id)
