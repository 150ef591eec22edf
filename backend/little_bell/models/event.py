"""Event model for open and click tracking."""
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from little_bell.models.base import Base, UTCDateTime, utcnow


class EventType(str, enum.Enum):
    """Kinds of tracking events."""

    OPEN = "open"
    CLICK = "click"


class Event(Base):
    """Append-only tracking event."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email_id: Mapped[int] = mapped_column(
        ForeignKey("emails.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Event details
    event_type: Mapped[str] = mapped_column(String(10), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))

    # Redirect target, clicks only
    url: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("event_type IN ('open', 'click')", name="ck_events_type"),
        Index("idx_events_email_id", "email_id"),
        Index("idx_events_type", "event_type"),
        Index("idx_events_timestamp", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<Event {self.id} {self.event_type} email={self.email_id}>"
