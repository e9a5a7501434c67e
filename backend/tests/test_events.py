"""Event bridge: client events mirrored into persisted session state."""

import asyncio

import pytest

from src.db.models.message import Message
from src.store.messages import MessageStore
from src.store.sessions import SessionStore
from src.whatsapp.events import EventBridge, encode_qr_data_url
from src.whatsapp.registry import SessionRegistry

from tests.fakes.fake_client import FakeClientFactory


async def create_session(session_factory, **kwargs):
    async with session_factory() as db:
        session = await SessionStore(db).create("Test", **kwargs)
        await db.commit()
    return session.id


async def load_session(session_factory, session_id):
    async with session_factory() as db:
        return await SessionStore(db).get(session_id)


@pytest.fixture
async def live(session_factory, registry, client_factory):
    """A persisted session with a started fake client."""
    session_id = await create_session(session_factory)
    await registry.create(session_id)
    return session_id, client_factory.latest(session_id)


def test_encode_qr_data_url():
    assert encode_qr_data_url("2@abc,def").startswith("data:image/png;base64,")


class TestSessionState:
    async def test_qr_sets_pending_with_code(self, session_factory, live):
        session_id, client = live

        client.show_qr()
        await client.wait_idle()

        session = await load_session(session_factory, session_id)
        assert session.status == "pending"
        assert session.qr_code.startswith("data:image/png;base64,")

    async def test_ready_connects_and_clears_qr(self, session_factory, live):
        session_id, client = live
        client.show_qr()
        await client.wait_idle()

        client.become_ready("33612345678")
        await client.wait_idle()

        session = await load_session(session_factory, session_id)
        assert session.status == "connected"
        assert session.phone_number == "+33612345678"
        assert session.qr_code is None

    async def test_back_to_back_qr_and_ready_keep_order(self, session_factory, registry, live):
        session_id, client = live

        client.show_qr()
        client.become_ready("33612345678")
        await client.wait_idle()

        session = await load_session(session_factory, session_id)
        assert session.status == "connected"
        assert session.phone_number == "+33612345678"
        assert session.qr_code is None
        assert session_id not in registry.event_bridge.busy_sessions()

    async def test_auth_failure_disconnects(self, session_factory, live):
        session_id, client = live
        client.show_qr()
        await client.wait_idle()

        client.fail_auth()
        await client.wait_idle()

        session = await load_session(session_factory, session_id)
        assert session.status == "disconnected"
        assert session.qr_code is None

    async def test_disconnect_clears_phone(self, session_factory, live):
        session_id, client = live
        client.become_ready()
        await client.wait_idle()

        client.drop()
        await client.wait_idle()

        session = await load_session(session_factory, session_id)
        assert session.status == "disconnected"
        assert session.phone_number is None

    async def test_disconnect_schedules_reconnect(self, session_factory, tmp_path):
        gate = asyncio.Event()

        async def blocked_sleep(_seconds):
            await gate.wait()

        factory = FakeClientFactory()
        registry = SessionRegistry(
            factory, tmp_path / "sessions", reconnect_max_attempts=2, sleep=blocked_sleep
        )
        registry.event_bridge = EventBridge(session_factory, registry)
        session_id = await create_session(session_factory)
        await registry.create(session_id)
        client = factory.latest(session_id)
        client.become_ready()
        await client.wait_idle()

        client.drop()
        await client.wait_idle()

        assert registry.stats()["reconnecting"] == 1
        await registry.shutdown()

    async def test_event_for_deleted_session_is_ignored(self, session_factory, registry, client_factory):
        await registry.create("0b8c7e59-2a42-4a4e-9a6c-5d1b4f2c9e11")
        client = client_factory.latest("0b8c7e59-2a42-4a4e-9a6c-5d1b4f2c9e11")

        client.become_ready()
        await client.wait_idle()

        assert await load_session(session_factory, client.session_id) is None


class TestInboundMessages:
    async def test_inbound_message_is_persisted(self, session_factory, live):
        session_id, client = live
        client.become_ready("33612345678")
        await client.wait_idle()

        client.receive("33698765432@c.us", "hello there", message_id="false_abc")
        await client.wait_idle()

        async with session_factory() as db:
            messages, total = await MessageStore(db).list_by_session(session_id)
        assert total == 1
        message: Message = messages[0]
        assert message.direction == "inbound"
        assert message.status == "sent"
        assert message.from_number == "33698765432@c.us"
        assert message.to_number == "+33612345678"
        assert message.content == "hello there"
        assert message.extra_data["whatsapp_id"] == "false_abc"

    async def test_inbound_message_is_forwarded_to_webhook(self, session_factory, registry, client_factory):
        session_id = await create_session(session_factory, webhook_url="https://hooks.example.com/wa")
        await registry.create(session_id)
        client = client_factory.latest(session_id)
        delivered = []

        async def capture(url, payload):
            delivered.append((url, payload))
            return True

        registry.event_bridge.forward_to_webhook = capture

        client.receive("33698765432@c.us", "ping")
        await client.wait_idle()

        assert len(delivered) == 1
        url, payload = delivered[0]
        assert url == "https://hooks.example.com/wa"
        assert payload["event"] == "message"
        assert payload["session_id"] == session_id
        assert payload["message"]["content"] == "ping"

    async def test_webhook_failure_is_swallowed(self, session_factory):
        bridge = EventBridge(session_factory, webhook_timeout=0.5)

        assert await bridge.forward_to_webhook("http://127.0.0.1:9/unreachable", {}) is False
