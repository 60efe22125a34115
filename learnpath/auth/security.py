"""Access token verification.

Tokens are HS256 JWTs signed by the identity service with the shared
``auth_secret_key``. Payload fields used here: ``sub`` (user UUID),
``role`` and ``type`` (must be ``"access"``).
"""

from typing import Any

from jose import JWTError, jwt

from learnpath.config import get_settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Token type == "access"
    - Presence of a subject

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise JWTError(msg)

    return payload
