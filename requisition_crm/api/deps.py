from typing import Annotated
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from requisition_crm.database import get_db
from requisition_crm.core.exceptions import PermissionDenied
from requisition_crm.core.security import Principal, UserRole, verify_access_token


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """
    Dependency to get the current authenticated principal.

    The identity provider is the source of truth for who the caller is and
    which role they hold; nothing is looked up locally.
    """
    principal = verify_access_token(credentials.credentials)
    if principal is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_roles(*roles: UserRole):
    """
    Dependency factory to require one of the given roles.

    Usage:
        @router.post("/", dependencies=[Depends(require_roles(UserRole.MANAGER))])
        async def manager_endpoint():
            ...
    """
    async def role_dependency(
        principal: Annotated[Principal, Depends(get_current_principal)]
    ) -> Principal:
        if not principal.has_role(*roles):
            raise PermissionDenied(
                f"Role '{principal.role.value}' is not allowed here",
                {"required_any_of": [r.value for r in roles]}
            )
        return principal

    return role_dependency


# Type aliases for cleaner endpoint signatures
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
DB = Annotated[AsyncSession, Depends(get_db)]
