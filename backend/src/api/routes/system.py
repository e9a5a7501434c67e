"""Service-wide status and statistics"""

from fastapi import APIRouter

from src.api.dependencies import DBSession, Registry, RequireRead
from src.config import settings
from src.db.base import utcnow
from src.store.messages import MessageStore
from src.whatsapp.sessions import SessionService

router = APIRouter()

VERSION = "1.0.0"


@router.get("/status")
async def service_status(api_key: RequireRead):
    return {
        "success": True,
        "service": settings.APP_NAME,
        "version": VERSION,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/stats")
async def service_stats(api_key: RequireRead, db: DBSession, registry: Registry):
    """Sessions by status, live client counts and 24h message volume."""
    stats = await SessionService(db, registry).stats()
    stats["messages_last_24h"] = await MessageStore(db).recent_count(hours=24)
    return {"success": True, "stats": stats}
