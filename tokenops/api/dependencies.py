"""
FastAPI Dependencies

Container access and Bearer JWT authentication.
"""
from typing import List, Optional

from fastapi import Depends, Header, Request
from jose import ExpiredSignatureError, JWTError, jwt
from loguru import logger
from pydantic import BaseModel, Field

from tokenops.api.container import Container
from tokenops.config import Settings
from tokenops.errors import AuthenticationError, AuthorizationError

ADMIN_ROLE = "admin"


class CurrentUser(BaseModel):
    """Claims taken from the access token."""
    user_id: str
    company_id: Optional[str] = None
    roles: List[str] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


def get_container(request: Request) -> Container:
    return request.app.state.container


def decode_token(token: str, settings: Settings) -> CurrentUser:
    """
    Validate an HS256 access token.

    Raises:
        AuthenticationError: Invalid signature, expired token or missing ``sub``
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired") from e
    except JWTError as e:
        logger.warning(f"🚫 Rejected access token: {e}")
        raise AuthenticationError("Could not validate credentials") from e

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Token is missing the 'sub' claim")

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return CurrentUser(user_id=str(subject), company_id=payload.get("company_id"), roles=list(roles))


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> CurrentUser:
    """
    Dependency for authenticated routes.

    Raises:
        AuthenticationError: 401 if the Bearer token is missing or invalid
    """
    if not authorization:
        raise AuthenticationError("Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authorization header must be 'Bearer <token>'")

    return decode_token(token.strip(), get_container(request).settings)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency for admin-only routes (403 otherwise)."""
    if not user.is_admin:
        raise AuthorizationError(f"Role '{ADMIN_ROLE}' required")
    return user
