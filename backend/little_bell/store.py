"""Durable single-file store for tenants, emails and tracking events.

The store wraps one SQLite file in WAL mode. Writes are serialized through a
store-wide lock (one writer at a time, across all tenants); reads never take
that lock and run concurrently with the in-flight write. Every write call runs
in its own transaction, so a cancelled request leaves either nothing or a
fully committed row behind.
"""
import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, AsyncIterator, Optional, Tuple, Union

import structlog
from sqlalchemy import and_, event, func, or_, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DatabaseError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.sql import Select
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from little_bell.config import Settings, database_path_from_url
from little_bell.exceptions import (
    NotFoundError,
    StoreBusyError,
    StoreCorruptionError,
    StoreError,
    ValidationError,
)
from little_bell.models import Base, Email, Event, EventType, Tenant
from little_bell.models.base import utcnow

logger = structlog.get_logger()

CORRUPTION_MARKERS = ("malformed", "not a database", "disk image", "file is encrypted")
BUSY_MARKERS = ("database is locked", "database is busy", "database table is locked")

# Driver errors can escape unwrapped when raised inside a connect hook
DB_ERRORS = (SQLAlchemyError, sqlite3.Error)

MAX_TENANT_ID_LENGTH = 255
SQLITE_MAX_INTEGER = 2**63 - 1


def _require_tenant_id(tenant_id: str) -> str:
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise ValidationError("Tenant id must not be empty")
    if len(tenant_id) > MAX_TENANT_ID_LENGTH:
        raise ValidationError(
            "Tenant id is too long",
            {"max_length": MAX_TENANT_ID_LENGTH},
        )
    return tenant_id


def _require_email_id(email_id: int) -> int:
    if isinstance(email_id, bool) or not isinstance(email_id, int) or not 0 < email_id <= SQLITE_MAX_INTEGER:
        raise ValidationError("Email id must be a positive integer", {"email_id": email_id})
    return email_id


def _coerce_event_type(event_type: Union[EventType, str]) -> EventType:
    try:
        return EventType(event_type)
    except ValueError:
        raise ValidationError("Unknown event type", {"event_type": event_type})


def _tenant_events(tenant_id: str, email_id: Optional[int] = None) -> Select:
    """Events visible to a tenant, optionally narrowed to one email."""
    stmt = (
        select(Event)
        .join(Email, Event.email_id == Email.id)
        .where(Email.tenant_id == tenant_id)
    )
    if email_id is not None:
        stmt = stmt.where(Email.id == email_id)
    return stmt


class Store:
    """Process-wide handle on the tracking database.

    Open it once at startup, hand it to every component, close it on shutdown.
    """

    list_page_size = 500

    def __init__(
        self,
        url: str,
        write_timeout: float = 5.0,
        busy_timeout_ms: int = 5000,
        echo: bool = False,
    ):
        self.url = url
        self.write_timeout = write_timeout
        self.busy_timeout_ms = busy_timeout_ms
        self.echo = echo
        self.healthy = True
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker[AsyncSession]] = None
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Store":
        return cls(
            settings.get_database_url,
            write_timeout=settings.store_write_timeout,
            busy_timeout_ms=settings.store_busy_timeout_ms,
            echo=settings.debug,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self) -> "Store":
        """Create the engine, apply SQLite pragmas and make sure the schema exists."""
        if self._engine is not None:
            return self

        path = database_path_from_url(self.url)
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_async_engine(self.url, echo=self.echo, future=True)
        busy_timeout_ms = int(self.busy_timeout_ms)

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
            cursor.close()

        self._engine = engine
        self._session_maker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        try:
            await self._create_schema()
        except DB_ERRORS as exc:
            error = self._translate_error(exc, "open")
            await self.close()
            raise error from exc

        await self.check_integrity()
        logger.info("Store opened", database=str(path) if path else ":memory:", healthy=self.healthy)
        return self

    @retry(
        stop=stop_after_attempt(5),
        wait=wait_fixed(1),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(logger, logging.INFO),
        reraise=True,
    )
    async def _create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_maker = None
        logger.info("Store closed")

    async def __aenter__(self) -> "Store":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Sessions and error translation
    # ------------------------------------------------------------------

    def _require_open(self) -> async_sessionmaker:
        if self._session_maker is None:
            raise StoreError("Store is not open")
        return self._session_maker

    def _translate_error(self, exc: Exception, operation: str, **context) -> StoreError:
        message = str(getattr(exc, "orig", None) or exc).lower()
        if isinstance(exc, (DatabaseError, sqlite3.DatabaseError)) and any(
            marker in message for marker in CORRUPTION_MARKERS
        ):
            self.healthy = False
            logger.error(
                "Store corruption detected, refusing further writes",
                operation=operation,
                database=self.url,
                error=str(exc),
                **context,
            )
            return StoreCorruptionError(
                "Store file is unreadable or inconsistent",
                {"operation": operation},
            )
        if isinstance(exc, (OperationalError, sqlite3.OperationalError)) and any(
            marker in message for marker in BUSY_MARKERS
        ):
            logger.warning("Store locked by another writer", operation=operation, **context)
            return StoreBusyError(timeout=self.busy_timeout_ms / 1000)
        logger.error("Store operation failed", operation=operation, error=str(exc), **context)
        return StoreError(f"Store operation '{operation}' failed", {"operation": operation})

    @asynccontextmanager
    async def _write_session(self, operation: str, **context) -> AsyncGenerator[AsyncSession, None]:
        """Serialized write transaction. Commits on success, rolls back on any error."""
        session_maker = self._require_open()
        if not self.healthy:
            raise StoreCorruptionError(
                "Store is marked unhealthy, refusing writes",
                {"operation": operation},
            )

        try:
            await asyncio.wait_for(self._write_lock.acquire(), timeout=self.write_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out waiting for the write lock",
                operation=operation,
                timeout=self.write_timeout,
                **context,
            )
            raise StoreBusyError(timeout=self.write_timeout)

        try:
            async with session_maker() as session:
                try:
                    async with session.begin():
                        yield session
                except DB_ERRORS as exc:
                    raise self._translate_error(exc, operation, **context) from exc
        finally:
            self._write_lock.release()

    @asynccontextmanager
    async def read_session(self, operation: str = "read", **context) -> AsyncGenerator[AsyncSession, None]:
        """Session for read-only queries. Does not wait on writers."""
        session_maker = self._require_open()
        try:
            async with session_maker() as session:
                yield session
        except DB_ERRORS as exc:
            raise self._translate_error(exc, operation, **context) from exc

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        """Round-trip a trivial query."""
        try:
            async with self.read_session("ping") as session:
                await session.execute(text("SELECT 1"))
        except StoreError:
            return False
        return True

    async def check_integrity(self) -> bool:
        """Run SQLite's quick_check; a failure marks the store unhealthy."""
        try:
            async with self.read_session("check_integrity") as session:
                result = (await session.execute(text("PRAGMA quick_check"))).scalar()
        except StoreError:
            return False
        if result != "ok":
            self.healthy = False
            logger.error("Store integrity check failed", database=self.url, result=result)
            return False
        return True

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    async def _ensure_tenant(self, session: AsyncSession, tenant_id: str, name: Optional[str] = None) -> bool:
        """Insert the tenant unless it exists. Returns True when a row was created."""
        stmt = (
            sqlite_insert(Tenant)
            .values(id=tenant_id, name=name or tenant_id, created_at=utcnow())
            .on_conflict_do_nothing(index_elements=["id"])
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def create_tenant(self, tenant_id: str, name: Optional[str] = None) -> Tenant:
        """Register a tenant. Returns the existing record if the id is taken."""
        tenant_id = _require_tenant_id(tenant_id)
        async with self._write_session("create_tenant", tenant_id=tenant_id) as session:
            created = await self._ensure_tenant(session, tenant_id, name)
            tenant = await session.get(Tenant, tenant_id)
        if created:
            logger.info("Tenant created", tenant_id=tenant_id)
        return tenant

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        async with self.read_session("get_tenant", tenant_id=tenant_id) as session:
            return await session.get(Tenant, tenant_id)

    # ------------------------------------------------------------------
    # Emails
    # ------------------------------------------------------------------

    async def create_email(
        self,
        tenant_id: str,
        subject: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> Email:
        """Register an email. Unknown tenants are created on the fly."""
        tenant_id = _require_tenant_id(tenant_id)
        async with self._write_session("create_email", tenant_id=tenant_id) as session:
            if await self._ensure_tenant(session, tenant_id):
                logger.info("Tenant auto-created", tenant_id=tenant_id)
            email = Email(
                tenant_id=tenant_id,
                subject=subject,
                recipient=recipient,
                created_at=utcnow(),
            )
            session.add(email)
            await session.flush()
        logger.info("Email registered", tenant_id=tenant_id, email_id=email.id)
        return email

    @staticmethod
    async def _scoped_email(session: AsyncSession, tenant_id: str, email_id: int) -> Optional[Email]:
        stmt = select(Email).where(Email.id == email_id, Email.tenant_id == tenant_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_email(self, tenant_id: str, email_id: int) -> Optional[Email]:
        """Tenant-scoped lookup. None if absent or owned by another tenant."""
        async with self.read_session("get_email", tenant_id=tenant_id, email_id=email_id) as session:
            return await self._scoped_email(session, tenant_id, email_id)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def append_event(
        self,
        tenant_id: str,
        email_id: int,
        event_type: Union[EventType, str],
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Event:
        """Append one event for an email owned by the tenant."""
        tenant_id = _require_tenant_id(tenant_id)
        email_id = _require_email_id(email_id)
        event_type = _coerce_event_type(event_type)
        if event_type is EventType.CLICK and not url:
            raise ValidationError("Click events require a target URL")
        if event_type is EventType.OPEN:
            url = None

        async with self._write_session(
            "append_event", tenant_id=tenant_id, email_id=email_id, event_type=event_type.value
        ) as session:
            email = await self._scoped_email(session, tenant_id, email_id)
            if email is None:
                raise NotFoundError("Email", email_id, tenant_id=tenant_id)

            new_event = Event(
                email_id=email.id,
                event_type=event_type.value,
                timestamp=utcnow(),
                user_agent=user_agent,
                ip_address=ip_address,
                url=url,
            )
            session.add(new_event)
            await session.flush()
        return new_event

    async def list_events(self, tenant_id: str, email_id: Optional[int] = None) -> AsyncIterator[Event]:
        """Yield a tenant's events (optionally one email's) in timestamp order.

        Rows are fetched in keyset-paginated pages and no connection is held
        between pages. The listing stops at the newest event that existed when
        it started, so it is finite even under a steady stream of writes.
        """
        high_water: Optional[int] = None
        position: Optional[Tuple[datetime, int]] = None

        while True:
            async with self.read_session("list_events", tenant_id=tenant_id, email_id=email_id) as session:
                if high_water is None:
                    high_water = await session.scalar(select(func.max(Event.id)))
                    if high_water is None:
                        return

                stmt = _tenant_events(tenant_id, email_id).where(Event.id <= high_water)
                if position is not None:
                    last_timestamp, last_id = position
                    stmt = stmt.where(
                        or_(
                            Event.timestamp > last_timestamp,
                            and_(Event.timestamp == last_timestamp, Event.id > last_id),
                        )
                    )
                stmt = stmt.order_by(Event.timestamp, Event.id).limit(self.list_page_size)
                page = list((await session.scalars(stmt)).all())

            for row in page:
                yield row

            if len(page) < self.list_page_size:
                return
            position = (page[-1].timestamp, page[-1].id)
