"""Message model"""

from datetime import datetime
from typing import TYPE_CHECKING
import uuid

from sqlalchemy import String, Text, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from src.db.base import Base, UTCDateTime, utcnow

if TYPE_CHECKING:
    from src.db.models.session import Session


class MessageDirection(str, enum.Enum):
    """Which way a message travelled."""
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(str, enum.Enum):
    """Delivery status of a message."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class Message(Base):
    """Message sent or received through a session."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        index=True,
    )

    direction: Mapped[str] = mapped_column(String(10))
    from_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Content
    content: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Media
    media_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    media_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    status: Mapped[str] = mapped_column(String(10), default=MessageStatus.PENDING.value)

    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, index=True)

    # Provider message id, failure cause, etc.
    extra_data: Mapped[dict] = mapped_column("metadata", JSON, default=dict)

    # Relationships
    session: Mapped["Session"] = relationship("Session", back_populates="messages")

    def __repr__(self) -> str:
        return f"<Message {self.id} {self.direction} status={self.status}>"
