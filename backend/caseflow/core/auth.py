"""
Authentication dependencies for FastAPI routes.

Provides:
- get_current_actor: verifies the identity provider's bearer token and
  returns the Actor snapshot used for every lifecycle operation
- actor_from_token: the same check for WebSocket handshakes
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .security import decode_token
from ..schemas.case import Actor


logger = logging.getLogger(__name__)

# Tokens come from the identity provider; tokenUrl is informational only
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def actor_from_token(token: Optional[str]) -> Optional[Actor]:
    """
    Build an Actor from a bearer token.

    Returns None when the token is missing, invalid, expired, or lacks a
    subject.
    """
    if not token:
        return None

    payload = decode_token(token)
    if payload is None or payload.get("type", "access") != "access":
        return None

    actor_id = payload.get("sub")
    if not actor_id:
        return None

    return Actor(
        id=str(actor_id),
        name=payload.get("name") or str(actor_id),
        role=payload.get("role"),
    )


async def get_current_actor(
    token: Optional[str] = Depends(oauth2_scheme),
) -> Actor:
    """
    Decode the JWT bearer token and return the authenticated Actor.

    Raises 401 if the token is missing or invalid.
    """
    actor = actor_from_token(token)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor
