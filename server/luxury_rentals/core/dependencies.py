"""FastAPI dependencies for authentication and shared workflow services."""

from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError, AuthorizationError

STAFF_ROLES = frozenset({"staff", "admin"})


def decode_token(token: str) -> dict:
    """
    Validate an HS256 bearer token and return the caller's identity.

    Raises:
        AuthenticationError: If the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(token, settings.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError(detail="Invalid token payload")

    return {
        "user_id": str(user_id),
        "email": payload.get("email"),
        "roles": list(payload.get("roles", [])),
    }


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: User information from validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    return decode_token(token)


async def get_optional_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Optional[dict]:
    """Like get_current_user, but anonymous callers get None."""
    if not authorization:
        return None
    return await get_current_user(authorization)


def is_staff(user: Optional[dict]) -> bool:
    return bool(user) and bool(STAFF_ROLES.intersection(user.get("roles", [])))


async def require_staff(user: dict = Depends(get_current_user)) -> dict:  # noqa: B008
    """Only staff and admins may change inventory or drive the workflow by hand."""
    if not is_staff(user):
        raise AuthorizationError(detail="Staff role required")
    return user


def get_action_dispatcher(request: Request):
    """Dispatcher created at startup; see main.create_app."""
    return request.app.state.dispatcher


def get_status_scheduler(request: Request):
    return request.app.state.scheduler

