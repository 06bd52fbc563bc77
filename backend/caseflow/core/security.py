"""
Token utilities for identities issued by the external identity provider.

The core trusts the actor carried in a verified token and performs no
authorization of its own. ``create_access_token`` exists for service
accounts, scripts, and tests that need to mint a token with the shared
secret.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt

from .config import settings


DEFAULT_TOKEN_TTL = timedelta(minutes=30)


def create_access_token(
    data: dict[str, Any],
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in token (``sub``, ``name``, ``role``)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_TTL)
    to_encode.update({"exp": expire, "type": "access"})

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.access_token_algorithm)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded payload dict or None if invalid
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.access_token_algorithm])
    except JWTError:
        return None
