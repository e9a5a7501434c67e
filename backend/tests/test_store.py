"""Persistent store: session invariants, message transitions, API keys."""

from datetime import timedelta

import pytest

from src.core.exceptions import ValidationError
from src.db.base import utcnow
from src.db.models.message import MessageDirection, MessageStatus
from src.db.models.session import SessionStatus
from src.store.api_keys import APIKeyStore, ensure_default_api_key
from src.store.messages import MessageStore
from src.store.sessions import SessionStore


async def make_message(db, session_id, status=MessageStatus.PENDING.value, direction="outbound"):
    return await MessageStore(db).create(
        session_id=session_id,
        direction=direction,
        from_number="+33612345678",
        to_number="+33698765432",
        content="hello",
        status=status,
    )


class TestSessionStore:
    async def test_create_defaults(self, db):
        session = await SessionStore(db).create("Test")

        assert len(session.id) == 36
        assert session.status == SessionStatus.PENDING.value
        assert session.phone_number is None
        assert session.settings == {}

    async def test_phone_number_only_while_connected(self, db):
        store = SessionStore(db)
        session = await store.create("Test")

        await store.update(session.id, status="connected", phone_number="+33612345678")
        assert session.phone_number == "+33612345678"

        await store.update(session.id, status="disconnected")
        assert session.phone_number is None

    async def test_connected_requires_phone_number(self, db):
        store = SessionStore(db)
        session = await store.create("Test")

        with pytest.raises(ValidationError):
            await store.update(session.id, status="connected")

    async def test_qr_code_only_while_pending(self, db):
        store = SessionStore(db)
        session = await store.create("Test")

        await store.update(session.id, qr_code="data:image/png;base64,xyz")
        assert session.qr_code is not None

        await store.update(session.id, status="connected", phone_number="+33612345678")
        assert session.qr_code is None

    async def test_unknown_status_rejected(self, db):
        store = SessionStore(db)
        session = await store.create("Test")

        with pytest.raises(ValidationError):
            await store.update(session.id, status="sleeping")

    async def test_update_missing_session_returns_none(self, db):
        assert await SessionStore(db).update("missing", name="x") is None

    async def test_list_filters_by_status(self, db):
        store = SessionStore(db)
        a = await store.create("A")
        await store.create("B")
        await store.update(a.id, status="disconnected")

        disconnected = await store.list("disconnected")

        assert [s.id for s in disconnected] == [a.id]
        assert len(await store.list()) == 2

    async def test_delete_cascades_to_messages(self, db):
        store = SessionStore(db)
        session = await store.create("Test")
        message = await make_message(db, session.id)
        await db.commit()

        assert await store.delete(session.id) is True
        await db.commit()

        db.expunge_all()
        assert await MessageStore(db).get(message.id) is None
        assert await store.delete(session.id) is False

    async def test_stats(self, db):
        store = SessionStore(db)
        a = await store.create("A")
        await store.create("B")
        await store.update(a.id, status="connected", phone_number="+33612345678")

        stats = await store.stats()

        assert stats == {"pending": 1, "connected": 1, "disconnected": 0, "total": 2}


class TestMessageStore:
    async def test_pending_to_sent(self, db):
        session = await SessionStore(db).create("Test")
        message = await make_message(db, session.id)

        updated = await MessageStore(db).update_status(
            message.id, MessageStatus.SENT.value, {"whatsapp_id": "true_1"}
        )

        assert updated.status == "sent"
        assert updated.extra_data["whatsapp_id"] == "true_1"

    @pytest.mark.parametrize("terminal", ["sent", "failed"])
    async def test_terminal_statuses_are_final(self, db, terminal):
        session = await SessionStore(db).create("Test")
        message = await make_message(db, session.id, status=terminal)

        with pytest.raises(ValidationError):
            await MessageStore(db).update_status(message.id, MessageStatus.PENDING.value)

    async def test_list_newest_first_with_total(self, db):
        session = await SessionStore(db).create("Test")
        store = MessageStore(db)
        first = await make_message(db, session.id)
        first.timestamp = utcnow() - timedelta(minutes=5)
        second = await make_message(db, session.id, direction=MessageDirection.INBOUND.value)
        await db.flush()

        page, total = await store.list_by_session(session.id, limit=1)
        assert total == 2
        assert [m.id for m in page] == [second.id]

        inbound, total = await store.list_by_session(session.id, direction="inbound")
        assert total == 1
        assert inbound[0].id == second.id

    async def test_get_scoped_to_session(self, db):
        sessions = SessionStore(db)
        a = await sessions.create("A")
        b = await sessions.create("B")
        message = await make_message(db, a.id)

        assert await MessageStore(db).get(message.id, session_id=b.id) is None
        assert await MessageStore(db).get(message.id, session_id=a.id) is not None

    async def test_stats_for_session(self, db):
        session = await SessionStore(db).create("Test")
        await make_message(db, session.id, status="sent")
        await make_message(db, session.id, status="failed")
        await make_message(db, session.id, status="sent", direction="inbound")

        stats = await MessageStore(db).stats_for_session(session.id)

        assert stats == {"total": 3, "sent": 2, "received": 1, "failed": 1, "pending": 0}

    async def test_delete_older_than(self, db):
        session = await SessionStore(db).create("Test")
        old = await make_message(db, session.id, status="sent")
        old.timestamp = utcnow() - timedelta(days=100)
        await make_message(db, session.id, status="sent")
        await db.flush()

        assert await MessageStore(db).delete_older_than(90) == 1


class TestAPIKeyStore:
    async def test_plaintext_is_not_stored(self, db):
        created = await APIKeyStore(db).create("ci")

        assert len(created.key) == 64
        assert created.record.key_hash != created.key
        assert len(created.record.key_hash) == 64

    async def test_verify(self, db):
        store = APIKeyStore(db)
        created = await store.create("ci", permissions=["read"])

        verified = await store.verify(created.key)

        assert verified.name == "ci"
        assert verified.permissions == ["read"]
        assert await store.verify("not-a-key") is None
        assert await store.verify(None) is None

    async def test_expired_key_is_rejected(self, db):
        store = APIKeyStore(db)
        created = await store.create("old", expires_at=utcnow() - timedelta(seconds=1))

        assert await store.verify(created.key) is None

    async def test_delete(self, db):
        store = APIKeyStore(db)
        created = await store.create("ci")

        assert await store.delete(created.record.key_hash) is True
        assert await store.verify(created.key) is None
        assert await store.delete(created.record.key_hash) is False

    async def test_ensure_default_uses_preconfigured_key(self, db):
        key = await ensure_default_api_key(db, "preconfigured-key-value")

        assert key == "preconfigured-key-value"
        assert await APIKeyStore(db).verify("preconfigured-key-value") is not None
        assert await ensure_default_api_key(db) is None

    async def test_ensure_default_generates_key(self, db):
        key = await ensure_default_api_key(db)

        assert key is not None
        assert await APIKeyStore(db).has_keys() is True
