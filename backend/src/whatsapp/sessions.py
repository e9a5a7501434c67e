"""Session service: persisted session rows kept in step with live clients"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.exceptions import SessionNotFound
from src.core.logging import log
from src.db.models.session import Session, SessionStatus
from src.store.sessions import SessionStore
from src.whatsapp.ratelimit import RateLimiter
from src.whatsapp.registry import SessionRegistry


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def serialize_session(
    session: Session, registry: SessionRegistry, detail: bool = False
) -> dict[str, Any]:
    data = {
        "id": session.id,
        "name": session.name,
        "status": session.status,
        "phone_number": session.phone_number,
        "created_at": _iso(session.created_at),
        "last_activity": _iso(session.last_activity),
        "client": {
            "exists": registry.has(session.id),
            "ready": registry.is_ready(session.id),
        },
    }
    if detail:
        data["webhook_url"] = session.webhook_url
        data["settings"] = session.settings or {}
        data["qr_code"] = session.qr_code
    return data


class SessionService:
    """Create, inspect, reconnect and delete sessions."""

    def __init__(
        self,
        db: AsyncSession,
        registry: SessionRegistry,
        rate_limiter: RateLimiter | None = None,
    ):
        self.db = db
        self.registry = registry
        self.rate_limiter = rate_limiter
        self.store = SessionStore(db)

    async def _require(self, session_id: str) -> Session:
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def create_session(
        self,
        name: str,
        settings: dict | None = None,
        webhook_url: str | None = None,
    ) -> Session:
        """Persist a pending session, then start its client.

        If the client fails to start the row is kept so the caller can
        retry with reconnect; ClientInitError propagates.
        """
        log.info(f"Creating session: {name}")
        session = await self.store.create(name, settings=settings, webhook_url=webhook_url)
        # Event handlers write through their own connections
        await self.db.commit()

        await self.registry.create(session.id)
        log.info(f"Session {session.id} created successfully")

        await self.db.refresh(session)
        return session

    async def get_session(self, session_id: str) -> Session:
        return await self._require(session_id)

    async def list_sessions(self, status: str | None = None) -> list[Session]:
        return await self.store.list(status)

    async def get_qr_code(self, session_id: str) -> dict[str, Any]:
        session = await self._require(session_id)

        if session.status == SessionStatus.CONNECTED.value:
            return {
                "qr_code": None,
                "status": session.status,
                "message": "Session already connected",
            }
        if not session.qr_code:
            return {
                "qr_code": None,
                "status": session.status,
                "message": "QR code not yet generated. Please wait...",
            }
        return {
            "qr_code": session.qr_code,
            "status": session.status,
            "message": "Scan the QR code with WhatsApp",
        }

    async def delete_session(self, session_id: str) -> None:
        """Tear down the client and its auth data, then delete the row."""
        await self._require(session_id)
        log.info(f"Deleting session: {session_id}")

        await self.registry.destroy(session_id, purge_auth_data=True)
        if self.rate_limiter is not None:
            self.rate_limiter.clear(session_id)

        await self.store.delete(session_id)
        await self.db.commit()
        log.info(f"Session {session_id} deleted successfully")

    async def reconnect_session(self, session_id: str) -> Session:
        await self._require(session_id)
        log.info(f"Reconnecting session: {session_id}")

        await self.store.update(session_id, status=SessionStatus.PENDING.value)
        await self.db.commit()

        await self.registry.reconnect(session_id)

        session = await self._require(session_id)
        await self.db.refresh(session)
        return session

    async def stats(self) -> dict[str, Any]:
        return {
            "sessions": await self.store.stats(),
            "whatsapp": self.registry.stats(),
        }


async def restore_sessions(
    session_factory: async_sessionmaker[AsyncSession],
    registry: SessionRegistry,
) -> int:
    """Start clients for every session that was not disconnected. Returns count started."""
    async with session_factory() as db:
        sessions = await SessionStore(db).list()

    restored = 0
    for session in sessions:
        if session.status == SessionStatus.DISCONNECTED.value:
            continue
        try:
            await registry.create(session.id)
            restored += 1
        except Exception as e:
            log.error(f"Could not restore session {session.id}: {e}")

    log.info(f"Restored {restored} WhatsApp session(s)")
    return restored
