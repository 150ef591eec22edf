"""Analytics schemas for the tenant dashboard."""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from little_bell.schemas.event import EventRead


# ============== Per-email breakdown ==============

class EmailStats(BaseModel):
    """Open and click counts for one email."""
    email_id: int
    subject: Optional[str] = None
    recipient: Optional[str] = None
    created_at: datetime
    opens: int = 0
    clicks: int = 0
    last_event_at: Optional[datetime] = None


# ============== Time Series ==============

class TimeSeriesPoint(BaseModel):
    """Event count for one UTC day."""
    day: date
    value: int


# ============== Tenant Summary ==============

class TenantSummary(BaseModel):
    """Dashboard data for one tenant."""
    tenant_id: str

    # Volume
    total_emails: int = 0
    total_opens: int = 0
    total_clicks: int = 0

    # Emails with at least one open / click
    unique_opens: int = 0
    unique_clicks: int = 0
    open_rate: Optional[Decimal] = None
    click_rate: Optional[Decimal] = None

    per_email: List[EmailStats] = []
    open_time_series: List[TimeSeriesPoint] = []
    click_time_series: List[TimeSeriesPoint] = []
    recent_events: List[EventRead] = []

    def email_counts(self) -> Dict[int, Dict[str, int]]:
        """Per-email counts keyed by email id."""
        return {
            stats.email_id: {"opens": stats.opens, "clicks": stats.clicks}
            for stats in self.per_email
        }
