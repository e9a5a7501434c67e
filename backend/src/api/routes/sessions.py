"""Session routes: create, inspect, reconnect and delete sessions"""

from typing import Any

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field, field_validator

from src.api.dependencies import (
    DBSession,
    Limiter,
    Registry,
    RequireRead,
    RequireWrite,
    SessionId,
)
from src.db.models.session import SessionStatus
from src.whatsapp.sessions import SessionService, serialize_session

router = APIRouter()


# ─── Schemas ─────────────────────────────────────────

class CreateSessionRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    settings: dict[str, Any] | None = None
    webhook_url: str | None = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Session name is required")
        return value

    @field_validator("webhook_url")
    @classmethod
    def check_webhook_url(cls, value: str | None) -> str | None:
        if value and not value.startswith(("http://", "https://")):
            raise ValueError("webhook_url must be an http(s) URL")
        return value or None


# ─── Routes ──────────────────────────────────────────

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    body: CreateSessionRequest,
    api_key: RequireWrite,
    db: DBSession,
    registry: Registry,
):
    """Create a session and start its WhatsApp client."""
    service = SessionService(db, registry)
    session = await service.create_session(
        body.name, settings=body.settings, webhook_url=body.webhook_url
    )
    return {"success": True, "session": serialize_session(session, registry, detail=True)}


@router.get("")
async def list_sessions(
    api_key: RequireRead,
    db: DBSession,
    registry: Registry,
    status_filter: SessionStatus | None = Query(default=None, alias="status"),
):
    service = SessionService(db, registry)
    sessions = await service.list_sessions(status_filter.value if status_filter else None)
    return {
        "success": True,
        "sessions": [serialize_session(s, registry) for s in sessions],
        "total": len(sessions),
    }


@router.get("/{session_id}")
async def get_session(api_key: RequireRead, session_id: SessionId, db: DBSession, registry: Registry):
    session = await SessionService(db, registry).get_session(session_id)
    return {"success": True, "session": serialize_session(session, registry, detail=True)}


@router.get("/{session_id}/qr")
async def get_qr_code(api_key: RequireRead, session_id: SessionId, db: DBSession, registry: Registry):
    """Current pairing QR code as a PNG data URL, if one is pending."""
    result = await SessionService(db, registry).get_qr_code(session_id)
    return {"success": True, **result}


@router.delete("/{session_id}")
async def delete_session(
    api_key: RequireWrite,
    session_id: SessionId,
    db: DBSession,
    registry: Registry,
    limiter: Limiter,
):
    await SessionService(db, registry, limiter).delete_session(session_id)
    return {"success": True, "message": "Session deleted successfully"}


@router.post("/{session_id}/reconnect")
async def reconnect_session(
    api_key: RequireWrite, session_id: SessionId, db: DBSession, registry: Registry
):
    session = await SessionService(db, registry).reconnect_session(session_id)
    return {
        "success": True,
        "message": "Reconnection initiated",
        "session": serialize_session(session, registry, detail=True),
    }
