"""SQLAlchemy models package."""
from little_bell.models.base import Base
from little_bell.models.tenant import Tenant
from little_bell.models.email import Email
from little_bell.models.event import Event, EventType

__all__ = [
    "Base",
    "Tenant",
    "Email",
    "Event",
    "EventType",
]
