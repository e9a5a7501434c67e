"""Session store: persisted session state.

All status transitions go through `update`, which keeps the two session
invariants: a phone number only while connected, a QR code only while
pending.
"""

from typing import Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ValidationError
from src.core.logging import log
from src.db.base import utcnow
from src.db.models.session import Session, SessionStatus

_UNSET: Any = object()

STATUSES = {s.value for s in SessionStatus}


class SessionStore:
    """CRUD for `sessions` rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        name: str,
        settings: dict | None = None,
        webhook_url: str | None = None,
    ) -> Session:
        session = Session(
            name=name,
            status=SessionStatus.PENDING.value,
            settings=settings or {},
            webhook_url=webhook_url,
        )
        self.db.add(session)
        await self.db.flush()
        await self.db.refresh(session)

        log.info(f"Created session record: {session.id} ({name})")
        return session

    async def get(self, session_id: str) -> Session | None:
        result = await self.db.execute(
            select(Session).where(Session.id == session_id)
        )
        return result.scalar_one_or_none()

    async def list(self, status: str | None = None) -> list[Session]:
        query = select(Session).order_by(Session.created_at.desc())
        if status:
            query = query.where(Session.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update(
        self,
        session_id: str,
        *,
        name: str | None = None,
        status: str | None = None,
        phone_number: str | None = _UNSET,
        qr_code: str | None = _UNSET,
        webhook_url: str | None = _UNSET,
        settings: dict | None = None,
    ) -> Session | None:
        """Apply a partial update. Returns None if the session does not exist."""
        session = await self.get(session_id)
        if not session:
            return None

        if status is not None and status not in STATUSES:
            raise ValidationError(f"Unknown session status: {status}")

        if name is not None:
            session.name = name
        if status is not None:
            session.status = status
        if phone_number is not _UNSET:
            session.phone_number = phone_number
        if qr_code is not _UNSET:
            session.qr_code = qr_code
        if webhook_url is not _UNSET:
            session.webhook_url = webhook_url
        if settings is not None:
            session.settings = settings

        if session.status != SessionStatus.CONNECTED.value:
            session.phone_number = None
        elif not session.phone_number:
            raise ValidationError("A connected session requires a phone number")
        if session.status != SessionStatus.PENDING.value:
            session.qr_code = None

        session.last_activity = utcnow()
        await self.db.flush()
        return session

    async def touch(self, session_id: str) -> None:
        """Bump last_activity."""
        session = await self.get(session_id)
        if session:
            session.last_activity = utcnow()
            await self.db.flush()

    async def delete(self, session_id: str) -> bool:
        session = await self.get(session_id)
        if not session:
            return False
        await self.db.delete(session)
        await self.db.flush()
        return True

    async def stats(self) -> dict[str, int]:
        """Session counts by status."""
        result = await self.db.execute(
            select(Session.status, func.count()).group_by(Session.status)
        )
        counts = {status: count for status, count in result.all()}
        stats = {s.value: counts.get(s.value, 0) for s in SessionStatus}
        stats["total"] = sum(counts.values())
        return stats
