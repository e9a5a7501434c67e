"""Persistent store: relational CRUD for sessions, messages and API keys"""

from src.store.sessions import SessionStore
from src.store.messages import MessageStore
from src.store.api_keys import APIKeyStore, VerifiedKey

__all__ = ["SessionStore", "MessageStore", "APIKeyStore", "VerifiedKey"]
