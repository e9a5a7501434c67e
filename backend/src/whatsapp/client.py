"""External WhatsApp client interface.

The orchestration core only talks to `WhatsAppClient`. Lifecycle
notifications are delivered through `on(event, callback)` subscriptions;
each callback takes a single payload argument and may be sync or async.
Async callbacks are scheduled on the running loop so that `emit` never
blocks the client.
"""

import asyncio
import enum
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from src.core.logging import log

CONTACT_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"

EventCallback = Callable[[Any], Awaitable[None] | None]


class ClientEvent(str, enum.Enum):
    """Events emitted by an external client."""
    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    LOADING_SCREEN = "loading_screen"


@dataclass
class ClientInfo:
    """Identity of the account a client is logged in as."""
    wid: str
    pushname: str | None = None
    platform: str | None = None

    @property
    def serialized(self) -> str:
        return f"{self.wid}{CONTACT_SUFFIX}"

    @property
    def phone_number(self) -> str:
        return f"+{self.wid}"


@dataclass
class MessageMedia:
    """Media attachment, base64 encoded."""
    mimetype: str
    data: str
    filename: str | None = None


@dataclass
class SentMessage:
    """Acknowledgement of an outbound message."""
    id: str
    timestamp: int | None = None


@dataclass
class InboundMessage:
    """Message received by a client."""
    id: str
    from_: str
    to: str | None = None
    body: str = ""
    timestamp: int | None = None
    type: str = "chat"
    has_media: bool = False
    author: str | None = None

    @property
    def is_group(self) -> bool:
        return self.from_.endswith(GROUP_SUFFIX)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "InboundMessage":
        return cls(
            id=str(payload.get("id", "")),
            from_=payload.get("from", ""),
            to=payload.get("to"),
            body=payload.get("body") or "",
            timestamp=payload.get("timestamp"),
            type=payload.get("type", "chat"),
            has_media=bool(payload.get("hasMedia", False)),
            author=payload.get("author"),
        )


@dataclass
class GroupParticipant:
    id: str
    is_admin: bool = False
    is_super_admin: bool = False


@dataclass
class Chat:
    """Chat as reported by the client (contact or group)."""
    id: str
    name: str
    is_group: bool = False
    participants: list[GroupParticipant] = field(default_factory=list)
    timestamp: int | None = None
    unread_count: int = 0
    description: str = ""
    owner: str | None = None
    created_at: int | None = None
    invite_code: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Chat":
        metadata = payload.get("groupMetadata") or {}
        return cls(
            id=payload["id"],
            name=payload.get("name", ""),
            is_group=bool(payload.get("isGroup", False)),
            participants=[
                GroupParticipant(
                    id=p["id"],
                    is_admin=bool(p.get("isAdmin", False)),
                    is_super_admin=bool(p.get("isSuperAdmin", False)),
                )
                for p in payload.get("participants") or []
            ],
            timestamp=payload.get("timestamp"),
            unread_count=payload.get("unreadCount") or 0,
            description=metadata.get("desc") or "",
            owner=metadata.get("owner"),
            created_at=metadata.get("creation"),
            invite_code=metadata.get("inviteCode"),
        )


class WhatsAppClient(ABC):
    """Abstract base class for one external WhatsApp client instance."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.info: ClientInfo | None = None
        self._listeners: dict[str, list[EventCallback]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def on(self, event: ClientEvent | str, callback: EventCallback) -> None:
        """Subscribe to an event."""
        self._listeners[ClientEvent(event).value].append(callback)

    def emit(self, event: ClientEvent | str, payload: Any = None) -> None:
        """Invoke every subscriber of `event` with `payload`."""
        for callback in list(self._listeners.get(ClientEvent(event).value, [])):
            try:
                result = callback(payload)
            except Exception as e:
                log.error(f"Listener for {event} failed in session {self.session_id}: {e}")
                continue

            if asyncio.iscoroutine(result):
                task = asyncio.get_running_loop().create_task(result)
                self._pending.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error(
                f"Async listener failed in session {self.session_id}: {task.exception()}"
            )

    async def wait_idle(self) -> None:
        """Wait for every scheduled async listener to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def is_ready(self) -> bool:
        return self.info is not None

    @abstractmethod
    async def initialize(self) -> None:
        """Start connecting. Raises if the client cannot be started."""
        pass

    @abstractmethod
    async def destroy(self) -> None:
        """Shut the client down and release its resources."""
        pass

    @abstractmethod
    async def send_message(
        self,
        chat_id: str,
        content: str | MessageMedia,
        caption: str | None = None,
    ) -> SentMessage:
        pass

    @abstractmethod
    async def get_chats(self) -> list[Chat]:
        pass

    @abstractmethod
    async def get_chat_by_id(self, chat_id: str) -> Chat:
        """Raises LookupError for an unknown chat."""
        pass
