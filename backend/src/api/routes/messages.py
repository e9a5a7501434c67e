"""Message routes: send, history and per-session statistics"""

from typing import Literal

from fastapi import APIRouter, Query, Response
from pydantic import BaseModel, Field, model_validator

from src.api.dependencies import (
    DBSession,
    Dispatcher,
    Limiter,
    RequireRead,
    RequireWrite,
    SessionId,
)
from src.core.exceptions import MessageNotFound, SessionNotFound
from src.db.models.message import Message, MessageDirection
from src.store.messages import MessageStore
from src.store.sessions import SessionStore
from src.whatsapp.addressing import classify_address
from src.whatsapp.dispatcher import MAX_TEXT_LENGTH
from src.whatsapp.media import (
    DEFAULT_MIMETYPE,
    MediaPayload,
    download_media,
    media_type_for,
    validate_base64,
)

router = APIRouter()


# ─── Schemas ─────────────────────────────────────────

class MediaRequest(BaseModel):
    type: Literal["image", "video", "audio", "document"] | None = None
    data: str | None = None
    url: str | None = None
    mimetype: str | None = None
    filename: str | None = None
    caption: str | None = None

    @model_validator(mode="after")
    def require_source(self) -> "MediaRequest":
        if not self.data and not self.url:
            raise ValueError("Media requires data (base64) or url")
        return self


class SendMessageRequest(BaseModel):
    to: str
    text: str | None = Field(default=None, max_length=MAX_TEXT_LENGTH)
    media: MediaRequest | None = None

    @model_validator(mode="after")
    def require_content(self) -> "SendMessageRequest":
        if not self.text and self.media is None:
            raise ValueError("Either text or media is required")
        return self


def serialize_message(message: Message, detail: bool = False) -> dict:
    data = {
        "id": message.id,
        "session_id": message.session_id,
        "direction": message.direction,
        "from": message.from_number,
        "to": message.to_number,
        "content": message.content,
        "media_type": message.media_type,
        "media_url": message.media_url,
        "status": message.status,
        "timestamp": message.timestamp.isoformat() if message.timestamp else None,
    }
    if detail:
        data["metadata"] = message.extra_data or {}
    return data


async def _build_media(media: MediaRequest) -> MediaPayload:
    if media.url and not media.data:
        data, mimetype, filename = await download_media(media.url)
        mimetype = media.mimetype or mimetype
        return MediaPayload(
            type=media.type or media_type_for(mimetype),
            data=data,
            mimetype=mimetype,
            filename=media.filename or filename,
            caption=media.caption,
            url=media.url,
        )

    validate_base64(media.data)
    mimetype = media.mimetype or DEFAULT_MIMETYPE
    return MediaPayload(
        type=media.type or media_type_for(mimetype),
        data=media.data,
        mimetype=mimetype,
        filename=media.filename,
        caption=media.caption,
    )


def _rate_limit_headers(response: Response, stats: dict) -> None:
    response.headers["X-RateLimit-Limit"] = str(stats["limit"])
    response.headers["X-RateLimit-Remaining"] = str(stats["remaining"])
    response.headers["X-RateLimit-Reset"] = stats["reset_at"]


# ─── Routes ──────────────────────────────────────────

@router.post("/{session_id}/messages")
async def send_message(
    api_key: RequireWrite,
    session_id: SessionId,
    body: SendMessageRequest,
    response: Response,
    limiter: Limiter,
    dispatcher: Dispatcher,
):
    """Send a text or media message through the session's WhatsApp account."""
    classify_address(body.to)
    media = await _build_media(body.media) if body.media else None

    # No await between admission and dispatch keeps sends in arrival order
    await limiter.acquire(session_id)
    message = await dispatcher.send(session_id, body.to, text=body.text, media=media)

    _rate_limit_headers(response, limiter.stats(session_id))
    return {"success": True, "message": serialize_message(message)}


@router.get("/{session_id}/messages")
async def list_messages(
    api_key: RequireRead,
    session_id: SessionId,
    db: DBSession,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    direction: MessageDirection | None = None,
):
    if not await SessionStore(db).get(session_id):
        raise SessionNotFound(session_id)

    messages, total = await MessageStore(db).list_by_session(
        session_id,
        limit=limit,
        offset=offset,
        direction=direction.value if direction else None,
    )
    return {
        "success": True,
        "messages": [serialize_message(m) for m in messages],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(messages) < total,
        },
    }


@router.get("/{session_id}/messages/{message_id}")
async def get_message(
    api_key: RequireRead, session_id: SessionId, message_id: str, db: DBSession
):
    message = await MessageStore(db).get(message_id, session_id=session_id)
    if not message:
        raise MessageNotFound(message_id)
    return {"success": True, "message": serialize_message(message, detail=True)}


@router.get("/{session_id}/messages-stats")
async def message_stats(
    api_key: RequireRead, session_id: SessionId, db: DBSession, limiter: Limiter
):
    if not await SessionStore(db).get(session_id):
        raise SessionNotFound(session_id)

    return {
        "success": True,
        "stats": {
            "messages": await MessageStore(db).stats_for_session(session_id),
            "rate_limit": limiter.stats(session_id),
        },
    }
