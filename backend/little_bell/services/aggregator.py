"""Read-side aggregation feeding the tenant dashboard."""
from datetime import date
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import String, and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from little_bell.models import Email, Event, EventType
from little_bell.schemas.analytics import EmailStats, TenantSummary, TimeSeriesPoint
from little_bell.schemas.event import EventRead
from little_bell.store import Store

logger = structlog.get_logger()


class Aggregator:
    """Computes per-tenant statistics straight from stored rows.

    Nothing is cached: every call reflects the committed state of the store.
    """

    def __init__(self, store: Store, recent_events_limit: int = 50):
        self.store = store
        self.recent_events_limit = recent_events_limit

    async def tenant_summary(self, tenant_id: str) -> TenantSummary:
        """Counts, per-email breakdown, daily series and recent activity for one tenant."""
        async with self.store.read_session("tenant_summary", tenant_id=tenant_id) as session:
            # All queries stop at the same event id
            high_water = await session.scalar(select(func.max(Event.id))) or 0
            per_email = await self._per_email(session, tenant_id, high_water)
            open_series = await self._time_series(session, tenant_id, EventType.OPEN, high_water)
            click_series = await self._time_series(session, tenant_id, EventType.CLICK, high_water)
            recent_events = await self._recent_events(session, tenant_id, high_water)

        total_emails = len(per_email)
        unique_opens = sum(1 for stats in per_email if stats.opens)
        unique_clicks = sum(1 for stats in per_email if stats.clicks)

        summary = TenantSummary(
            tenant_id=tenant_id,
            total_emails=total_emails,
            total_opens=sum(stats.opens for stats in per_email),
            total_clicks=sum(stats.clicks for stats in per_email),
            unique_opens=unique_opens,
            unique_clicks=unique_clicks,
            open_rate=Decimal(unique_opens) / Decimal(total_emails) if total_emails > 0 else None,
            click_rate=Decimal(unique_clicks) / Decimal(total_emails) if total_emails > 0 else None,
            per_email=per_email,
            open_time_series=open_series,
            click_time_series=click_series,
            recent_events=recent_events,
        )
        logger.debug(
            "Tenant summary computed",
            tenant_id=tenant_id,
            total_emails=summary.total_emails,
            total_opens=summary.total_opens,
            total_clicks=summary.total_clicks,
        )
        return summary

    async def _per_email(self, session: AsyncSession, tenant_id: str, high_water: int) -> List[EmailStats]:
        """Every email of the tenant with its counts, including emails without events."""
        opens = func.count(case((Event.event_type == EventType.OPEN.value, Event.id)))
        clicks = func.count(case((Event.event_type == EventType.CLICK.value, Event.id)))
        stmt = (
            select(
                Email.id,
                Email.subject,
                Email.recipient,
                Email.created_at,
                opens.label("opens"),
                clicks.label("clicks"),
                func.max(Event.timestamp).label("last_event_at"),
            )
            .outerjoin(Event, and_(Event.email_id == Email.id, Event.id <= high_water))
            .where(Email.tenant_id == tenant_id)
            .group_by(Email.id)
            .order_by(Email.id)
        )
        result = await session.execute(stmt)
        return [
            EmailStats(
                email_id=row.id,
                subject=row.subject,
                recipient=row.recipient,
                created_at=row.created_at,
                opens=row.opens,
                clicks=row.clicks,
                last_event_at=row.last_event_at,
            )
            for row in result.all()
        ]

    async def _time_series(
        self,
        session: AsyncSession,
        tenant_id: str,
        event_type: EventType,
        high_water: int,
    ) -> List[TimeSeriesPoint]:
        """Daily event counts (UTC), oldest day first. Days without events are omitted."""
        day = func.date(Event.timestamp, type_=String).label("day")
        stmt = (
            select(day, func.count(Event.id).label("value"))
            .join(Email, Event.email_id == Email.id)
            .where(
                Email.tenant_id == tenant_id,
                Event.event_type == event_type.value,
                Event.id <= high_water,
            )
            .group_by(day)
            .order_by(day)
        )
        result = await session.execute(stmt)
        return [
            TimeSeriesPoint(day=_as_date(row.day), value=row.value)
            for row in result.all()
        ]

    async def _recent_events(self, session: AsyncSession, tenant_id: str, high_water: int) -> List[EventRead]:
        """The latest events of the tenant, newest first."""
        if self.recent_events_limit <= 0:
            return []
        stmt = (
            select(Event)
            .join(Email, Event.email_id == Email.id)
            .where(Email.tenant_id == tenant_id, Event.id <= high_water)
            .order_by(Event.timestamp.desc(), Event.id.desc())
            .limit(self.recent_events_limit)
        )
        result = await session.scalars(stmt)
        return [EventRead.model_validate(row) for row in result.all()]


def _as_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)
