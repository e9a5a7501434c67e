"""Message dispatcher: validates and executes one outbound send.

Order of operations for every send:
1. session exists and is connected, live client is ready;
2. a pending Message row is committed;
3. the client send runs under `send_timeout`;
4. the row moves to sent (with the provider id) or failed.
A crash between 2 and 4 leaves an auditable pending row.
"""

import asyncio
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.exceptions import (
    ClientNotReady,
    SendFailed,
    SessionNotConnected,
    SessionNotFound,
    ValidationError,
)
from src.core.logging import log
from src.db.models.message import Message, MessageDirection, MessageStatus
from src.store.messages import MessageStore
from src.store.sessions import SessionStore
from src.whatsapp.addressing import classify_address
from src.whatsapp.media import MediaPayload, validate_base64
from src.whatsapp.registry import SessionRegistry

MAX_TEXT_LENGTH = 10000


class MessageDispatcher:
    """Sends messages through the registry's live clients."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: SessionRegistry,
        send_timeout: float = 30.0,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.send_timeout = send_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _locked(self, session_id: str):
        """FIFO send lock for one session, held only while sends are queued."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    def busy_sessions(self) -> set[str]:
        return set(self._locks)

    async def send(
        self,
        session_id: str,
        to: str,
        text: str | None = None,
        media: MediaPayload | None = None,
    ) -> Message:
        """Send text and/or media. Raises on any failure; see module docstring."""
        address = classify_address(to)
        if not text and media is None:
            raise ValidationError("Either text or media is required")
        if text and len(text) > MAX_TEXT_LENGTH:
            raise ValidationError(f"Text too long (max {MAX_TEXT_LENGTH} characters)")
        if media is not None:
            validate_base64(media.data)

        # Taken before any other await so sends leave in arrival order
        async with self._locked(session_id):
            async with self.session_factory() as db:
                sessions = SessionStore(db)
                messages = MessageStore(db)

                session = await sessions.get(session_id)
                if session is None:
                    raise SessionNotFound(session_id)
                if not session.is_connected:
                    raise SessionNotConnected(session_id, session.status)

                handle = self.registry.get(session_id)
                if handle is None or not self.registry.is_ready(session_id):
                    raise ClientNotReady(session_id)

                caption = None
                if media is not None:
                    caption = text or media.caption
                    content = media.to_message_media()
                    log.info(f"Sending {media.type} from session {session_id} to {address.kind} {to}")
                else:
                    content = text
                    log.info(f"Sending message from session {session_id} to {address.kind} {to}")

                message = await messages.create(
                    session_id=session_id,
                    direction=MessageDirection.OUTBOUND.value,
                    from_number=session.phone_number,
                    to_number=to,
                    content=caption if media is not None else text,
                    media_type=media.type if media is not None else None,
                    media_url=media.url if media is not None else None,
                    status=MessageStatus.PENDING.value,
                )
                await db.commit()

                try:
                    sent = await asyncio.wait_for(
                        handle.client.send_message(address.chat_id, content, caption=caption),
                        timeout=self.send_timeout,
                    )
                except Exception as e:
                    cause = str(e) or e.__class__.__name__
                    if isinstance(e, asyncio.TimeoutError):
                        cause = f"no response from client after {self.send_timeout:g}s"
                    log.error(f"Failed to send message {message.id}: {cause}")
                    await messages.update_status(
                        message.id, MessageStatus.FAILED.value, {"error": cause}
                    )
                    await db.commit()
                    raise SendFailed(message.id, cause) from e

                message = await messages.update_status(
                    message.id, MessageStatus.SENT.value, {"whatsapp_id": sent.id}
                )
                await sessions.touch(session_id)
                await db.commit()

                log.info(f"Message sent: {message.id}")
                return message
