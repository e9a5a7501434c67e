"""Group listings, read live from a session's client"""

from typing import Any

from src.core.exceptions import (
    ClientNotReady,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from src.core.logging import log
from src.whatsapp.addressing import group_chat_id
from src.whatsapp.client import Chat, WhatsAppClient
from src.whatsapp.registry import SessionRegistry


def _ready_client(registry: SessionRegistry, session_id: str) -> WhatsAppClient:
    handle = registry.get(session_id)
    if handle is None or not registry.is_ready(session_id):
        raise ClientNotReady(session_id)
    return handle.client


def _my_role(chat: Chat, me: str) -> tuple[bool, bool]:
    for participant in chat.participants:
        if participant.id == me:
            return participant.is_admin, participant.is_super_admin
    return False, False


def summarize_group(chat: Chat, me: str) -> dict[str, Any]:
    is_admin, is_super_admin = _my_role(chat, me)
    return {
        "id": chat.id,
        "name": chat.name,
        "participants": len(chat.participants),
        "is_admin": is_admin,
        "is_super_admin": is_super_admin,
        "timestamp": chat.timestamp,
        "unread_count": chat.unread_count,
    }


async def list_groups(registry: SessionRegistry, session_id: str) -> list[dict[str, Any]]:
    """All group chats visible to the session."""
    client = _ready_client(registry, session_id)
    log.info(f"Fetching groups for session {session_id}")

    try:
        chats = await client.get_chats()
    except Exception as e:
        log.error(f"Error fetching groups for session {session_id}: {e}")
        raise ExternalServiceError("WhatsApp client", str(e)) from e

    me = client.info.serialized
    groups = [summarize_group(chat, me) for chat in chats if chat.is_group]

    log.info(f"Found {len(groups)} groups for session {session_id}")
    return groups


async def get_group(
    registry: SessionRegistry, session_id: str, group_id: str
) -> dict[str, Any]:
    """Details of one group, including participants."""
    chat_id = group_chat_id(group_id)
    client = _ready_client(registry, session_id)
    log.info(f"Fetching group details: {chat_id}")

    try:
        chat = await client.get_chat_by_id(chat_id)
    except LookupError as e:
        raise NotFoundError("Group", group_id) from e
    except Exception as e:
        log.error(f"Error fetching group {chat_id} for session {session_id}: {e}")
        raise ExternalServiceError("WhatsApp client", str(e)) from e

    if not chat.is_group:
        raise ValidationError("Not a group chat", details={"group_id": group_id})

    is_admin, is_super_admin = _my_role(chat, client.info.serialized)
    return {
        "id": chat.id,
        "name": chat.name,
        "description": chat.description,
        "owner": chat.owner,
        "created_at": chat.created_at,
        "participants": [
            {
                "id": p.id,
                "is_admin": p.is_admin,
                "is_super_admin": p.is_super_admin,
            }
            for p in chat.participants
        ],
        "participant_count": len(chat.participants),
        "is_admin": is_admin,
        "is_super_admin": is_super_admin,
        "invite_code": chat.invite_code,
        "unread_count": chat.unread_count,
    }
