"""Session registry lifecycle and supervised reconnection."""

import asyncio

import pytest

from src.core.exceptions import ClientInitError
from src.whatsapp.registry import SessionRegistry

from tests.fakes.fake_client import FakeClientFactory


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_registry(tmp_path, factory, **kwargs) -> SessionRegistry:
    kwargs.setdefault("sleep", RecordingSleep())
    return SessionRegistry(factory, tmp_path / "sessions", **kwargs)


class TestCreate:
    async def test_create_starts_client(self, registry, client_factory, tmp_path):
        handle = await registry.create("s1")

        client = client_factory.latest("s1")
        assert handle.client is client
        assert client.initialize_calls == 1
        assert handle.auth_path == tmp_path / "sessions" / "session-s1"
        assert registry.has("s1")
        assert not registry.is_ready("s1")

    async def test_create_is_idempotent(self, registry, client_factory):
        first = await registry.create("s1")
        second = await registry.create("s1")

        assert first is second
        assert len(client_factory.built["s1"]) == 1

    async def test_concurrent_creates_build_one_client(self, registry, client_factory):
        handles = await asyncio.gather(*(registry.create("s1") for _ in range(5)))

        assert len({id(h) for h in handles}) == 1
        assert len(client_factory.built["s1"]) == 1

    async def test_init_failure_leaves_no_handle(self, registry, client_factory):
        client_factory.initialize_error = RuntimeError("browser crashed")

        with pytest.raises(ClientInitError) as exc_info:
            await registry.create("s1")

        assert "browser crashed" in exc_info.value.message
        assert registry.get("s1") is None
        assert not registry.has_lock("s1")

    async def test_ready_tracks_client_identity(self, registry, client_factory):
        await registry.create("s1")
        client = client_factory.latest("s1")

        client.become_ready()
        await client.wait_idle()

        assert registry.is_ready("s1")
        assert registry.stats()["ready_sessions"] == 1

    async def test_pairing_challenge_is_remembered_until_ready(self, registry, client_factory):
        handle = await registry.create("s1")
        client = client_factory.latest("s1")

        client.show_qr("2@challenge")
        assert handle.pairing_challenge == "2@challenge"

        client.become_ready()
        assert handle.pairing_challenge is None
        await client.wait_idle()


class TestDestroy:
    async def test_destroy_removes_handle(self, registry, client_factory):
        await registry.create("s1")

        assert await registry.destroy("s1") is True

        assert registry.get("s1") is None
        assert client_factory.latest("s1").destroy_calls == 1
        assert not registry.has_lock("s1")

    async def test_destroy_removes_handle_even_when_client_errors(self, registry, client_factory):
        await registry.create("s1")
        client_factory.latest("s1").destroy_error = RuntimeError("already closed")

        assert await registry.destroy("s1") is True
        assert registry.get("s1") is None

    async def test_destroy_unknown_session(self, registry):
        assert await registry.destroy("missing") is False

    async def test_destroy_purges_auth_data(self, registry):
        handle = await registry.create("s1")
        handle.auth_path.mkdir(parents=True)
        (handle.auth_path / "creds.json").write_text("{}")

        await registry.destroy("s1", purge_auth_data=True)

        assert not handle.auth_path.exists()

    async def test_shutdown_destroys_everything(self, registry, client_factory):
        await registry.create("s1")
        await registry.create("s2")
        client_factory.latest("s2").destroy_error = RuntimeError("boom")

        await registry.shutdown()

        assert registry.active_sessions() == []


class TestReconnect:
    async def test_reconnect_reinitializes_existing_client(self, registry, client_factory):
        handle = await registry.create("s1")

        again = await registry.reconnect("s1")

        assert again is handle
        assert client_factory.latest("s1").initialize_calls == 2

    async def test_reconnect_replaces_broken_client(self, registry, client_factory):
        await registry.create("s1")
        broken = client_factory.latest("s1")
        broken.initialize_error = RuntimeError("stale")

        handle = await registry.reconnect("s1")

        assert handle.client is not broken
        assert broken.destroy_calls == 1
        assert len(client_factory.built["s1"]) == 2

    async def test_reconnect_without_handle_creates_one(self, registry, client_factory):
        handle = await registry.reconnect("s1")

        assert handle is registry.get("s1")
        assert len(client_factory.built["s1"]) == 1


class TestSupervisedReconnect:
    def test_backoff_is_exponential_and_capped(self, tmp_path):
        registry = make_registry(
            tmp_path,
            FakeClientFactory(),
            reconnect_base_delay=5.0,
            reconnect_max_delay=30.0,
        )

        assert [registry.backoff_delay(n) for n in range(1, 6)] == [5.0, 10.0, 20.0, 30.0, 30.0]

    async def test_recovers_after_drop(self, tmp_path):
        factory = FakeClientFactory()
        sleep = RecordingSleep()
        registry = make_registry(tmp_path, factory, reconnect_max_attempts=3, sleep=sleep)
        await registry.create("s1")
        client = factory.latest("s1")

        task = registry.schedule_reconnect("s1")

        assert await task is True
        assert sleep.delays == [5.0]
        assert client.initialize_calls == 2

    async def test_gives_up_after_max_attempts(self, tmp_path):
        factory = FakeClientFactory()
        sleep = RecordingSleep()
        registry = make_registry(
            tmp_path, factory, reconnect_max_attempts=3, reconnect_base_delay=1.0, sleep=sleep
        )
        await registry.create("s1")
        factory.latest("s1").initialize_error = RuntimeError("offline")
        factory.initialize_error = RuntimeError("offline")

        task = registry.schedule_reconnect("s1")

        assert await task is False
        assert sleep.delays == [1.0, 2.0, 4.0]
        assert registry.get("s1") is None

    async def test_one_supervisor_per_session(self, tmp_path):
        factory = FakeClientFactory()
        gate = asyncio.Event()

        async def blocked_sleep(_seconds):
            await gate.wait()

        registry = make_registry(tmp_path, factory, reconnect_max_attempts=2, sleep=blocked_sleep)
        await registry.create("s1")

        first = registry.schedule_reconnect("s1")
        second = registry.schedule_reconnect("s1")
        assert first is second
        assert registry.stats()["reconnecting"] == 1

        gate.set()
        assert await first is True

    async def test_no_supervisor_without_handle_or_when_disabled(self, tmp_path, registry):
        assert registry.schedule_reconnect("missing") is None

        await registry.create("s1")
        assert registry.schedule_reconnect("s1") is None

    async def test_destroy_cancels_supervisor(self, tmp_path):
        factory = FakeClientFactory()
        gate = asyncio.Event()

        async def blocked_sleep(_seconds):
            await gate.wait()

        registry = make_registry(tmp_path, factory, reconnect_max_attempts=2, sleep=blocked_sleep)
        await registry.create("s1")
        task = registry.schedule_reconnect("s1")
        await asyncio.sleep(0)

        await registry.destroy("s1")

        with pytest.raises(asyncio.CancelledError):
            await task
        assert registry.get("s1") is None
