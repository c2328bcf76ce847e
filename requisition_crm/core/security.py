"""Verification of identity-provider bearer tokens.

The identity provider signs access tokens carrying the principal id in
``sub`` and the procurement role in ``role``. This service never stores
credentials; it only checks the signature and reads those two claims.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Any
import logging
import uuid

from jose import JWTError, jwt

from requisition_crm.config import settings


logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    """Roles issued by the identity provider."""
    SITE_ENGINEER = "site_engineer"
    MANAGER = "manager"
    PURCHASE_OFFICER = "purchase_officer"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as asserted by the identity provider."""
    id: uuid.UUID
    role: UserRole
    name: Optional[str] = None

    def has_role(self, *roles: UserRole) -> bool:
        return self.role in roles


def create_access_token(
    subject: str | uuid.UUID,
    role: UserRole | str,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None
) -> str:
    """
    Create a signed access token in the identity provider's format.

    Used by local tooling and tests; production tokens come from the
    identity provider itself.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=30))

    to_encode = {
        "sub": str(subject),
        "role": role.value if isinstance(role, UserRole) else role,
        "exp": expire,
        "iat": now,
        "jti": str(uuid.uuid4()),
        "type": "access",
    }
    if settings.TOKEN_AUDIENCE:
        to_encode["aud"] = settings.TOKEN_AUDIENCE
    if settings.TOKEN_ISSUER:
        to_encode["iss"] = settings.TOKEN_ISSUER

    if additional_claims:
        to_encode.update(additional_claims)

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.TOKEN_AUDIENCE,
            issuer=settings.TOKEN_ISSUER,
            options={"verify_aud": settings.TOKEN_AUDIENCE is not None},
        )
    except JWTError as e:
        logger.debug("Token rejected: %s", e)
        return None


def verify_access_token(token: str) -> Optional[Principal]:
    """
    Verify an access token and return the principal it asserts.

    Returns:
        Principal or None if the token is invalid, not an access token,
        or carries an unknown role / malformed subject.
    """
    payload = decode_token(token)
    if payload is None:
        return None

    if payload.get("type", "access") != "access":
        return None

    try:
        principal_id = uuid.UUID(str(payload.get("sub")))
        role = UserRole(payload.get("role"))
    except ValueError:
        logger.warning("Token with malformed subject or role: sub=%s role=%s",
                       payload.get("sub"), payload.get("role"))
        return None

    return Principal(id=principal_id, role=role, name=payload.get("name"))
