"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current user extraction from JWT
- Admin-only access
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError
from pydantic import ValidationError as PydanticValidationError

from learnpath.auth.permissions import UserRole
from learnpath.auth.schemas import AuthenticatedUser
from learnpath.auth.security import decode_access_token
from learnpath.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> AuthenticatedUser:
    """Get current authenticated user from JWT token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise _unauthorized("Access token not provided")

    try:
        payload = decode_access_token(token)
        user = AuthenticatedUser(
            id=payload["sub"],
            role=payload.get("role", UserRole.STUDENT.value),
        )
    except (JWTError, PydanticValidationError) as e:
        raise _unauthorized("Invalid or expired token") from e

    # Set user_id in context for logging
    set_user_id(str(user.id))

    return user


def require_role(*allowed_roles: UserRole):
    """Create dependency requiring specific role(s)."""

    async def role_checker(
        user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    ) -> AuthenticatedUser:
        if user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return role_checker


def require_admin():
    """Require ADMIN role."""
    return require_role(UserRole.ADMIN)


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
AdminUser = Annotated[AuthenticatedUser, Depends(require_admin())]
