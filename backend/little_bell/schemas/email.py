"""Email schemas for request/response validation."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CreateEmailRequest(BaseModel):
    """Schema for registering an email to track."""
    subject: Optional[str] = None
    recipient: Optional[str] = Field(None, max_length=320)


class CreateEmailResponse(BaseModel):
    """Identifier of the new email and its tracking pixel."""
    email_id: int
    tracking_pixel_url: str


class EmailRead(BaseModel):
    """Schema for an email response."""
    id: int
    tenant_id: str
    subject: Optional[str] = None
    recipient: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ClickUrlResponse(BaseModel):
    """A click-tracking link and the destination it redirects to."""
    click_url: str
    original_url: str
