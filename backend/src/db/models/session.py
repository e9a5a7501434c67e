"""Session model - one logical WhatsApp account connection"""

from datetime import datetime
from typing import TYPE_CHECKING
import uuid

from sqlalchemy import String, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from src.db.base import Base, UTCDateTime, utcnow

if TYPE_CHECKING:
    from src.db.models.message import Message


class SessionStatus(str, enum.Enum):
    """Connection state of a session."""
    PENDING = "pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Session(Base):
    """WhatsApp session managed by the gateway."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    name: Mapped[str] = mapped_column(String(255))

    # State
    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.PENDING.value, index=True
    )
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # Pairing challenge as a PNG data URL, only while pending
    qr_code: Mapped[str | None] = mapped_column(Text, nullable=True)

    webhook_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    settings: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    last_activity: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
    )

    # Relationships
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Session {self.id} name={self.name} status={self.status}>"

    @property
    def is_connected(self) -> bool:
        return self.status == SessionStatus.CONNECTED.value
