"""Database models"""

from src.db.models.session import Session, SessionStatus
from src.db.models.message import Message, MessageDirection, MessageStatus
from src.db.models.api_key import APIKey

__all__ = [
    "Session",
    "SessionStatus",
    "Message",
    "MessageDirection",
    "MessageStatus",
    "APIKey",
]
