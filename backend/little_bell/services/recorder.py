"""Event recorder: turns inbound tracking requests into store writes."""
import re
from typing import Optional, Union
from urllib.parse import quote

import structlog

from little_bell.exceptions import NotFoundError, StoreError, TrackingError, ValidationError
from little_bell.models import Event, EventType
from little_bell.services import redirect
from little_bell.store import SQLITE_MAX_INTEGER, Store

_EMAIL_ID_PATTERN = re.compile(r"[0-9]+")


def parse_email_id(raw: Union[str, int, None]) -> int:
    """Parse a raw email identifier into a positive integer."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    else:
        candidate = raw.strip() if isinstance(raw, str) else ""
        if not _EMAIL_ID_PATTERN.fullmatch(candidate):
            raise ValidationError("Invalid email id", {"email_id": raw})
        value = int(candidate)
    if not 0 < value <= SQLITE_MAX_INTEGER:
        raise ValidationError("Invalid email id", {"email_id": raw})
    return value


def tracking_pixel_url(base_url: str, tenant_id: str, email_id: int) -> str:
    return f"{base_url.rstrip('/')}/{quote(tenant_id, safe='')}/pixel/{email_id}.gif"


def tracking_click_url(base_url: str, tenant_id: str, email_id: int, url: str) -> str:
    return f"{base_url.rstrip('/')}/{quote(tenant_id, safe='')}/click/{email_id}?url={redirect.encode(url)}"


class TrackingOutcome:
    """Result of an open-tracking request, which never raises."""

    def __init__(
        self,
        success: bool,
        event: Optional[Event] = None,
        error: Optional[TrackingError] = None,
    ):
        self.success = success
        self.event = event
        self.error = error

    @classmethod
    def ok(cls, event: Event) -> "TrackingOutcome":
        return cls(success=True, event=event)

    @classmethod
    def fail(cls, error: TrackingError) -> "TrackingOutcome":
        return cls(success=False, error=error)

    def __bool__(self) -> bool:
        return self.success


class EventRecorder:
    """Validates open/click requests and appends them to the store.

    Every valid request produces a new row; repeated opens are kept as a
    time series rather than collapsed.
    """

    def __init__(self, store: Store):
        self.store = store
        self.logger = structlog.get_logger(component=self.__class__.__name__)

    async def record_open(
        self,
        tenant_id: str,
        email_id_raw: Union[str, int],
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TrackingOutcome:
        """Record a pixel fetch.

        Failures are logged and returned in the outcome, never raised: the
        caller always answers with the pixel.
        """
        try:
            email_id = parse_email_id(email_id_raw)
            new_event = await self.store.append_event(
                tenant_id,
                email_id,
                EventType.OPEN,
                user_agent=user_agent,
                ip_address=ip_address,
            )
        except (ValidationError, NotFoundError) as exc:
            self.logger.warning(
                "Open not recorded",
                tenant_id=tenant_id,
                email_id=email_id_raw,
                error=exc.message,
            )
            return TrackingOutcome.fail(exc)
        except StoreError as exc:
            self.logger.error(
                "Open not recorded, store failure",
                tenant_id=tenant_id,
                email_id=email_id_raw,
                error=exc.message,
                error_type=type(exc).__name__,
            )
            return TrackingOutcome.fail(exc)

        self.logger.info("Open recorded", tenant_id=tenant_id, email_id=email_id, event_id=new_event.id)
        return TrackingOutcome.ok(new_event)

    async def record_click(
        self,
        tenant_id: str,
        email_id_raw: Union[str, int],
        raw_url: Optional[str],
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> str:
        """Record a followed tracking link and return the decoded target URL."""
        url = redirect.resolve(raw_url)
        email_id = parse_email_id(email_id_raw)
        new_event = await self.store.append_event(
            tenant_id,
            email_id,
            EventType.CLICK,
            user_agent=user_agent,
            ip_address=ip_address,
            url=url,
        )
        self.logger.info("Click recorded", tenant_id=tenant_id, email_id=email_id, event_id=new_event.id)
        return url

    async def click_url(
        self,
        tenant_id: str,
        email_id_raw: Union[str, int],
        url: Optional[str],
        base_url: str,
    ) -> str:
        """Build the click-tracking link for ``url`` on an email the tenant owns."""
        target = redirect.validate(url)
        email_id = parse_email_id(email_id_raw)
        email = await self.store.get_email(tenant_id, email_id)
        if email is None:
            raise NotFoundError("Email", email_id, tenant_id=tenant_id)
        return tracking_click_url(base_url, tenant_id, email.id, target)
