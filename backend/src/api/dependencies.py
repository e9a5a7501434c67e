"""FastAPI dependencies"""

import uuid
from typing import Annotated

from fastapi import Depends, Header, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import AuthenticationError, ValidationError
from src.core.security import (
    PERMISSION_ADMIN,
    PERMISSION_READ,
    PERMISSION_WRITE,
    get_require_permission,
)
from src.db.session import get_db
from src.store.api_keys import APIKeyStore, VerifiedKey
from src.whatsapp.dispatcher import MessageDispatcher
from src.whatsapp.ratelimit import RateLimiter
from src.whatsapp.registry import SessionRegistry


async def get_current_api_key(
    db: Annotated[AsyncSession, Depends(get_db)],
    x_api_key: Annotated[str | None, Header()] = None,
) -> VerifiedKey:
    """Authenticate the caller from the X-API-Key header."""
    if not x_api_key:
        raise AuthenticationError("Missing API key. Please provide X-API-Key header.")

    verified = await APIKeyStore(db).verify(x_api_key)
    if verified is None:
        raise AuthenticationError("Invalid API key.")
    return verified


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_dispatcher(request: Request) -> MessageDispatcher:
    return request.app.state.dispatcher


def valid_session_id(session_id: Annotated[str, Path()]) -> str:
    """Reject session ids that are not UUIDs."""
    try:
        uuid.UUID(session_id)
    except ValueError:
        raise ValidationError(
            "Invalid session ID format", details={"session_id": session_id}
        )
    return session_id


# Type aliases for dependencies
DBSession = Annotated[AsyncSession, Depends(get_db)]
RequireRead = Annotated[VerifiedKey, Depends(get_require_permission(PERMISSION_READ))]
RequireWrite = Annotated[VerifiedKey, Depends(get_require_permission(PERMISSION_WRITE))]
RequireAdmin = Annotated[VerifiedKey, Depends(get_require_permission(PERMISSION_ADMIN))]
Registry = Annotated[SessionRegistry, Depends(get_registry)]
Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
Dispatcher = Annotated[MessageDispatcher, Depends(get_dispatcher)]
SessionId = Annotated[str, Depends(valid_session_id)]
