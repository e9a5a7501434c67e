"""Message store: persisted message history and delivery status"""

from datetime import timedelta
from typing import Any

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ValidationError
from src.db.base import utcnow
from src.db.models.message import Message, MessageDirection, MessageStatus

# pending is the only status a message can leave
ALLOWED_TRANSITIONS = {
    MessageStatus.PENDING.value: {MessageStatus.SENT.value, MessageStatus.FAILED.value},
}


class MessageStore:
    """CRUD for `messages` rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        session_id: str,
        direction: str,
        from_number: str | None,
        to_number: str | None,
        content: str | None = None,
        media_type: str | None = None,
        media_url: str | None = None,
        status: str = MessageStatus.PENDING.value,
        extra_data: dict[str, Any] | None = None,
    ) -> Message:
        message = Message(
            session_id=session_id,
            direction=direction,
            from_number=from_number,
            to_number=to_number,
            content=content,
            media_type=media_type,
            media_url=media_url,
            status=status,
            extra_data=extra_data or {},
        )
        self.db.add(message)
        await self.db.flush()
        await self.db.refresh(message)
        return message

    async def get(self, message_id: str, session_id: str | None = None) -> Message | None:
        query = select(Message).where(Message.id == message_id)
        if session_id:
            query = query.where(Message.session_id == session_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_by_session(
        self,
        session_id: str,
        limit: int = 50,
        offset: int = 0,
        direction: str | None = None,
    ) -> tuple[list[Message], int]:
        """Newest first. Returns (page, total matching)."""
        conditions = [Message.session_id == session_id]
        if direction:
            conditions.append(Message.direction == direction)

        result = await self.db.execute(
            select(Message)
            .where(*conditions)
            .order_by(Message.timestamp.desc())
            .limit(limit)
            .offset(offset)
        )
        messages = list(result.scalars().all())

        total = await self.db.scalar(
            select(func.count()).select_from(Message).where(*conditions)
        )
        return messages, total or 0

    async def update_status(
        self,
        message_id: str,
        status: str,
        extra_data: dict[str, Any] | None = None,
    ) -> Message | None:
        message = await self.get(message_id)
        if not message:
            return None

        if status not in ALLOWED_TRANSITIONS.get(message.status, set()):
            raise ValidationError(
                f"Illegal message status transition {message.status} -> {status}"
            )

        message.status = status
        if extra_data:
            message.extra_data = {**(message.extra_data or {}), **extra_data}
        await self.db.flush()
        return message

    async def stats_for_session(self, session_id: str) -> dict[str, int]:
        async def _count(*conditions) -> int:
            return await self.db.scalar(
                select(func.count())
                .select_from(Message)
                .where(Message.session_id == session_id, *conditions)
            ) or 0

        return {
            "total": await _count(),
            "sent": await _count(Message.direction == MessageDirection.OUTBOUND.value),
            "received": await _count(Message.direction == MessageDirection.INBOUND.value),
            "failed": await _count(Message.status == MessageStatus.FAILED.value),
            "pending": await _count(Message.status == MessageStatus.PENDING.value),
        }

    async def recent_count(self, session_id: str | None = None, hours: int = 24) -> int:
        conditions = [Message.timestamp > utcnow() - timedelta(hours=hours)]
        if session_id:
            conditions.append(Message.session_id == session_id)
        return await self.db.scalar(
            select(func.count()).select_from(Message).where(*conditions)
        ) or 0

    async def delete_older_than(self, days: int) -> int:
        """Retention cleanup. Returns number of deleted rows."""
        threshold = utcnow() - timedelta(days=days)
        result = await self.db.execute(
            delete(Message).where(Message.timestamp < threshold)
        )
        await self.db.flush()
        return result.rowcount or 0
