"""Tenant schemas for request/response validation."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TenantCreate(BaseModel):
    """Schema for explicit tenant registration."""
    id: str = Field(..., min_length=1, max_length=255)
    name: Optional[str] = Field(None, max_length=255)


class TenantRead(BaseModel):
    """Schema for a tenant response."""
    id: str
    name: str
    created_at: datetime

    class Config:
        from_attributes = True
