"""Jokes API - FastAPI Dependency Chain

Provides Depends()-compatible functions for authenticated database access.

Dependency chain:
  get_engine → get_current_actor → require_active_actor
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from . import database as _db_module
from .actor import Actor, make_actor
from .database import call_with_retry, hash_token, validate_user_token
from .logging_config import get_logger
from .responses import is_error

logger = get_logger(__name__)


def get_engine():
    """Engine for the current request. Tests override this dependency."""
    return _db_module._get_engine()


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        return token or None
    return None


# --- Layer 1: Authenticate ---

async def get_current_actor(request: Request, engine=Depends(get_engine)) -> Actor:
    """Resolve the bearer token to an immutable Actor and store it on request.state."""
    token = _bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = call_with_retry(engine, validate_user_token, hash_token(token))
    if is_error(user):
        # Fail closed: no identity without the database
        logger.error("Token validation unavailable", extra={"code": user.get("code")})
        raise HTTPException(status_code=503, detail=user["message"])
    if user is None:
        logger.info("Auth failed: unknown or expired token", extra={"path": request.url.path})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor = make_actor(user["id"], user["roles"], user["status"], user["name"], user["email"])
    request.state.actor = actor
    return actor


# --- Layer 2: Status gate ---

async def require_active_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Suspended and banned accounts keep no access, even with a leftover token."""
    if not actor.is_active:
        logger.info("Inactive account rejected", extra={"actor_id": actor.id, "status": actor.status})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Account is {actor.status}")
    return actor
