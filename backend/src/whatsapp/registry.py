"""Session registry: owns one live WhatsApp client per session.

The registry is the only component that creates, stores or tears down
client handles. It is built once at startup and shared through
`app.state`; callers get handles from it but never mutate the map.
"""

import asyncio
import shutil
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from src.core.exceptions import ClientInitError
from src.core.logging import log
from src.db.base import utcnow
from src.whatsapp.client import ClientEvent, WhatsAppClient

if TYPE_CHECKING:
    from src.whatsapp.events import EventBridge

ClientFactory = Callable[[str, Path], WhatsAppClient]


@dataclass
class ClientHandle:
    """Runtime-only handle on a live client."""
    session_id: str
    client: WhatsAppClient
    auth_path: Path
    created_at: datetime = field(default_factory=utcnow)
    pairing_challenge: str | None = None
    closing: bool = False

    @property
    def ready(self) -> bool:
        return self.client.is_ready


class SessionRegistry:
    """Map of session id → live client handle, with lifecycle control."""

    def __init__(
        self,
        client_factory: ClientFactory,
        sessions_path: Path,
        event_bridge: "EventBridge | None" = None,
        reconnect_max_attempts: int = 5,
        reconnect_base_delay: float = 5.0,
        reconnect_max_delay: float = 300.0,
        destroy_timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client_factory = client_factory
        self.sessions_path = Path(sessions_path)
        self.event_bridge = event_bridge
        self.reconnect_max_attempts = reconnect_max_attempts
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.destroy_timeout = destroy_timeout
        self._sleep = sleep

        self._handles: dict[str, ClientHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._reconnect_tasks: dict[str, asyncio.Task] = {}

        log.info(f"Session registry initialized (auth data: {self.sessions_path})")

    @asynccontextmanager
    async def _locked(self, session_id: str):
        """Per-session lifecycle lock, dropped once unused and the handle is gone."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                if session_id not in self._handles:
                    del self._locks[session_id]

    def has_lock(self, session_id: str) -> bool:
        return session_id in self._locks

    def auth_path_for(self, session_id: str) -> Path:
        return self.sessions_path / f"session-{session_id}"

    # ─── Lookup ──────────────────────────────────────────

    def get(self, session_id: str) -> ClientHandle | None:
        return self._handles.get(session_id)

    def has(self, session_id: str) -> bool:
        return session_id in self._handles

    def is_ready(self, session_id: str) -> bool:
        handle = self._handles.get(session_id)
        if handle is None:
            return False
        try:
            return handle.ready
        except Exception:
            return False

    def active_sessions(self) -> list[str]:
        return list(self._handles)

    def stats(self) -> dict[str, int]:
        active = self.active_sessions()
        return {
            "total_clients": len(self._handles),
            "active_sessions": len(active),
            "ready_sessions": sum(1 for sid in active if self.is_ready(sid)),
            "reconnecting": sum(1 for t in self._reconnect_tasks.values() if not t.done()),
        }

    # ─── Lifecycle ───────────────────────────────────────

    async def create(self, session_id: str) -> ClientHandle:
        """Create and start a client. Returns the existing handle if there is one."""
        async with self._locked(session_id):
            return await self._create_locked(session_id)

    async def _create_locked(self, session_id: str) -> ClientHandle:
        existing = self._handles.get(session_id)
        if existing is not None:
            log.info(f"Client already exists for session {session_id}")
            return existing

        log.info(f"Initializing WhatsApp client for session {session_id}")
        auth_path = self.auth_path_for(session_id)
        client = self.client_factory(session_id, auth_path)
        handle = ClientHandle(session_id=session_id, client=client, auth_path=auth_path)

        self._subscribe(handle)
        self._handles[session_id] = handle

        try:
            await client.initialize()
        except Exception as e:
            self._handles.pop(session_id, None)
            handle.closing = True
            log.error(f"Failed to initialize client for session {session_id}: {e}")
            raise ClientInitError(session_id, str(e)) from e

        log.info(f"Client initialized for session {session_id}")
        return handle

    def _subscribe(self, handle: ClientHandle) -> None:
        def remember_challenge(qr: str) -> None:
            handle.pairing_challenge = qr

        def forget_challenge(_payload) -> None:
            handle.pairing_challenge = None

        handle.client.on(ClientEvent.QR, remember_challenge)
        handle.client.on(ClientEvent.READY, forget_challenge)
        handle.client.on(ClientEvent.AUTH_FAILURE, forget_challenge)

        if self.event_bridge is not None:
            self.event_bridge.attach(handle.session_id, handle.client)

    async def destroy(self, session_id: str, purge_auth_data: bool = False) -> bool:
        """Tear down a session's client. The handle is always removed."""
        self._cancel_reconnect(session_id)

        async with self._locked(session_id):
            handle = self._handles.get(session_id)
            if handle is None:
                log.info(f"No client to destroy for session {session_id}")
                return False

            handle.closing = True
            log.info(f"Destroying client for session {session_id}")
            try:
                await asyncio.wait_for(handle.client.destroy(), timeout=self.destroy_timeout)
            except Exception as e:
                log.error(
                    f"Error destroying client for session {session_id}, "
                    f"removing it anyway: {e!r}"
                )
            finally:
                self._handles.pop(session_id, None)

        if purge_auth_data:
            await asyncio.to_thread(shutil.rmtree, handle.auth_path, True)

        log.info(f"Client destroyed for session {session_id}")
        return True

    async def reconnect(self, session_id: str) -> ClientHandle:
        """Re-initialize the existing client, or replace it if that fails."""
        async with self._locked(session_id):
            handle = self._handles.get(session_id)
            if handle is None:
                log.info(f"No client for session {session_id}, creating a new one")
                return await self._create_locked(session_id)

            try:
                log.info(f"Reconnecting session {session_id}")
                await handle.client.initialize()
                return handle
            except Exception as e:
                log.error(f"Reconnection failed for session {session_id}: {e}")

            # Replace the broken client with a fresh one
            self._handles.pop(session_id, None)
            handle.closing = True
            try:
                await asyncio.wait_for(handle.client.destroy(), timeout=self.destroy_timeout)
            except Exception as e:
                log.debug(f"Discarded client for session {session_id} did not close cleanly: {e!r}")
            return await self._create_locked(session_id)

    # ─── Supervised reconnection ─────────────────────────

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt `attempt` (1-based)."""
        delay = self.reconnect_base_delay * (2 ** (attempt - 1))
        return min(delay, self.reconnect_max_delay)

    def schedule_reconnect(self, session_id: str) -> asyncio.Task | None:
        """Start a reconnect supervisor after an unsolicited disconnect.

        At most one supervisor runs per session. Returns None when the
        session has no live handle, is being torn down, or retries are off.
        """
        handle = self._handles.get(session_id)
        if handle is None or handle.closing:
            return None
        if self.reconnect_max_attempts <= 0:
            return None

        running = self._reconnect_tasks.get(session_id)
        if running is not None and not running.done():
            return running

        task = asyncio.get_running_loop().create_task(
            self._supervise_reconnect(session_id),
            name=f"reconnect-{session_id}",
        )
        self._reconnect_tasks[session_id] = task

        def _done(t: asyncio.Task) -> None:
            if self._reconnect_tasks.get(session_id) is t:
                del self._reconnect_tasks[session_id]

        task.add_done_callback(_done)
        return task

    async def _supervise_reconnect(self, session_id: str) -> bool:
        for attempt in range(1, self.reconnect_max_attempts + 1):
            delay = self.backoff_delay(attempt)
            log.info(
                f"Reconnecting session {session_id} in {delay:g}s "
                f"(attempt {attempt}/{self.reconnect_max_attempts})"
            )
            await self._sleep(delay)
            try:
                await self.reconnect(session_id)
                log.info(f"Reconnect attempt {attempt} started session {session_id}")
                return True
            except Exception as e:
                log.warning(f"Reconnect attempt {attempt} for session {session_id} failed: {e}")

        log.error(
            f"Giving up on session {session_id} after {self.reconnect_max_attempts} "
            "attempts, manual reconnect required"
        )
        return False

    def _cancel_reconnect(self, session_id: str) -> None:
        task = self._reconnect_tasks.pop(session_id, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def shutdown(self) -> None:
        """Destroy every client (process exit)."""
        log.info("Cleaning up WhatsApp clients...")
        for session_id in list(self._reconnect_tasks):
            self._cancel_reconnect(session_id)

        results = await asyncio.gather(
            *(self.destroy(sid) for sid in self.active_sessions()),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                log.error(f"Error during client cleanup: {result}")
        log.info("WhatsApp client cleanup completed")
