"""Event bridge: mirrors external client events into persisted state.

The bridge only writes (client → database). Each handler opens its own
database session, and every failure is logged and swallowed so a broken
handler can never take down the client's event subscription. Async
handlers for one session run one at a time, in the order the client
emitted the events.
"""

import asyncio
import base64
import io
from contextlib import asynccontextmanager
from functools import partial
from typing import TYPE_CHECKING, Any

import httpx
import qrcode
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.logging import log
from src.db.models.message import MessageDirection, MessageStatus
from src.db.models.session import SessionStatus
from src.store.messages import MessageStore
from src.store.sessions import SessionStore
from src.whatsapp.client import (
    ClientEvent,
    ClientInfo,
    InboundMessage,
    WhatsAppClient,
)

if TYPE_CHECKING:
    from src.whatsapp.registry import SessionRegistry


def encode_qr_data_url(payload: str) -> str:
    """Render a pairing payload as a base64 PNG data URL."""
    image = qrcode.make(payload)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


class EventBridge:
    """Subscribes to a client's events and updates the store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: "SessionRegistry | None" = None,
        webhook_timeout: float = 10.0,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.webhook_timeout = webhook_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _in_order(self, session_id: str):
        """Serialize handlers of one session. Enter before any other await."""
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
        """Sessions with a handler running or queued."""
        return set(self._locks)

    def attach(self, session_id: str, client: WhatsAppClient) -> None:
        """Register this bridge's handlers on `client`."""
        client.on(ClientEvent.QR, partial(self.on_pairing_challenge, session_id))
        client.on(ClientEvent.AUTHENTICATED, partial(self.on_authenticated, session_id))
        client.on(ClientEvent.READY, partial(self.on_ready, session_id))
        client.on(ClientEvent.AUTH_FAILURE, partial(self.on_auth_failure, session_id))
        client.on(ClientEvent.DISCONNECTED, partial(self.on_disconnected, session_id))
        client.on(ClientEvent.MESSAGE, partial(self.on_message, session_id))
        client.on(ClientEvent.LOADING_SCREEN, partial(self.on_loading_screen, session_id))

    async def _update_session(self, session_id: str, **fields: Any) -> bool:
        try:
            async with self.session_factory() as db:
                session = await SessionStore(db).update(session_id, **fields)
                if session is None:
                    log.warning(f"Event for unknown session {session_id}, ignored")
                    return False
                await db.commit()
                return True
        except Exception as e:
            log.error(f"Failed to update session {session_id} from event: {e}")
            return False

    # ─── Handlers ────────────────────────────────────────

    async def on_pairing_challenge(self, session_id: str, qr: str) -> None:
        async with self._in_order(session_id):
            log.info(f"QR code received for session {session_id}")
            try:
                data_url = await asyncio.to_thread(encode_qr_data_url, qr)
            except Exception as e:
                log.error(f"Error generating QR code for session {session_id}: {e}")
                return

            if await self._update_session(
                session_id, qr_code=data_url, status=SessionStatus.PENDING.value
            ):
                log.info(f"QR code saved for session {session_id}")

    def on_authenticated(self, session_id: str, _payload: Any) -> None:
        log.info(f"Authenticated session {session_id}")

    async def on_ready(self, session_id: str, info: ClientInfo | None) -> None:
        async with self._in_order(session_id):
            if info is None:
                log.error(f"Session {session_id} reported ready without an identity")
                return

            if await self._update_session(
                session_id,
                status=SessionStatus.CONNECTED.value,
                phone_number=info.phone_number,
                qr_code=None,
            ):
                log.info(f"Session {session_id} is ready, connected to {info.phone_number}")

    async def on_auth_failure(self, session_id: str, reason: Any) -> None:
        async with self._in_order(session_id):
            log.error(f"Authentication failed for session {session_id}: {reason}")
            await self._update_session(
                session_id, status=SessionStatus.DISCONNECTED.value, qr_code=None
            )

    async def on_disconnected(self, session_id: str, reason: Any) -> None:
        async with self._in_order(session_id):
            log.warning(f"Session {session_id} disconnected: {reason}")
            await self._update_session(session_id, status=SessionStatus.DISCONNECTED.value)

            if self.registry is not None:
                self.registry.schedule_reconnect(session_id)

    async def on_message(self, session_id: str, message: InboundMessage) -> None:
        async with self._in_order(session_id):
            stored = await self._store_inbound(session_id, message)
        if stored is None:
            return

        webhook_url, payload = stored
        if webhook_url:
            await self.forward_to_webhook(webhook_url, payload)

    async def _store_inbound(
        self, session_id: str, message: InboundMessage
    ) -> tuple[str | None, dict] | None:
        preview = message.body[:50] + ("..." if len(message.body) > 50 else "")
        log.info(f"Message received in session {session_id} from {message.from_}: {preview}")

        try:
            async with self.session_factory() as db:
                sessions = SessionStore(db)
                session = await sessions.get(session_id)
                if session is None:
                    log.warning(f"Inbound message for unknown session {session_id}, dropped")
                    return None

                record = await MessageStore(db).create(
                    session_id=session_id,
                    direction=MessageDirection.INBOUND.value,
                    from_number=message.from_,
                    to_number=message.to or session.phone_number,
                    content=message.body or None,
                    media_type=message.type if message.has_media else None,
                    status=MessageStatus.SENT.value,
                    extra_data={
                        "whatsapp_id": message.id,
                        "author": message.author,
                        "is_group": message.is_group,
                        "provider_timestamp": message.timestamp,
                    },
                )
                await sessions.touch(session_id)
                await db.commit()
                webhook_url = session.webhook_url
                payload = {
                    "event": "message",
                    "session_id": session_id,
                    "message": {
                        "id": record.id,
                        "whatsapp_id": message.id,
                        "from": message.from_,
                        "to": record.to_number,
                        "content": record.content,
                        "media_type": record.media_type,
                        "timestamp": record.timestamp.isoformat(),
                    },
                }
        except Exception as e:
            log.error(f"Failed to store inbound message for session {session_id}: {e}")
            return None

        return webhook_url, payload

    def on_loading_screen(self, session_id: str, percent: Any) -> None:
        log.debug(f"Session {session_id} loading: {percent}%")

    async def forward_to_webhook(self, url: str, payload: dict) -> bool:
        """POST an event to a session's webhook. Best effort."""
        try:
            async with httpx.AsyncClient(timeout=self.webhook_timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            log.warning(f"Webhook delivery to {url} failed: {e}")
            return False
