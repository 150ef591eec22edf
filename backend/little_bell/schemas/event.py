"""Event schemas for responses."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class EventRead(BaseModel):
    """A single tracking event."""
    id: int
    email_id: int
    event_type: str
    timestamp: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    url: Optional[str] = None

    class Config:
        from_attributes = True
