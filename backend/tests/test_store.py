"""Tests for the single-file store."""
import asyncio
import sqlite3
from datetime import datetime, timezone

import pytest

from little_bell.exceptions import (
    NotFoundError,
    StoreBusyError,
    StoreCorruptionError,
    StoreError,
    ValidationError,
)
from little_bell.models import EventType
from little_bell.store import Store


async def collect(iterator):
    return [item async for item in iterator]


class TestLifecycle:
    """Opening, closing and health of the store handle."""

    async def test_open_creates_data_directory(self, settings):
        store = Store.from_settings(settings)
        async with store:
            assert store.is_open
            assert settings.database_path.exists()
            assert await store.ping()
            assert store.healthy
        assert not store.is_open

    async def test_open_is_idempotent(self, store):
        assert await store.open() is store

    async def test_uses_write_ahead_log(self, store):
        from sqlalchemy import text

        async with store.read_session() as session:
            mode = (await session.execute(text("PRAGMA journal_mode"))).scalar()
        assert mode == "wal"

    async def test_closed_store_refuses_operations(self, settings):
        store = Store.from_settings(settings)
        with pytest.raises(StoreError):
            await store.create_tenant("acme")
        with pytest.raises(StoreError):
            await store.get_email("acme", 1)

    async def test_data_survives_reopen(self, settings):
        async with Store.from_settings(settings) as store:
            email = await store.create_email("acme", subject="Hello")
            await store.append_event("acme", email.id, EventType.OPEN)

        async with Store.from_settings(settings) as store:
            reopened = await store.get_email("acme", email.id)
            assert reopened.subject == "Hello"
            assert len(await collect(store.list_events("acme"))) == 1

    async def test_unreadable_file_is_reported_as_corruption(self, settings):
        settings.database_path.parent.mkdir(parents=True, exist_ok=True)
        settings.database_path.write_bytes(b"this is definitely not a sqlite database" * 100)

        store = Store.from_settings(settings)
        with pytest.raises(StoreError):
            await store.open()
        assert not store.is_open
        assert not store.healthy


class TestTenants:
    """Tenant registration."""

    async def test_create_tenant(self, store):
        tenant = await store.create_tenant("acme", "Acme Corp")
        assert tenant.id == "acme"
        assert tenant.name == "Acme Corp"
        assert tenant.created_at.tzinfo is not None

    async def test_create_tenant_is_idempotent(self, store):
        first = await store.create_tenant("acme", "Acme Corp")
        second = await store.create_tenant("acme", "Renamed")
        assert second.id == first.id
        assert second.name == "Acme Corp"
        assert second.created_at == first.created_at

    async def test_name_defaults_to_id(self, store):
        tenant = await store.create_tenant("globex")
        assert tenant.name == "globex"

    @pytest.mark.parametrize("tenant_id", ["", "   ", "x" * 256])
    async def test_invalid_tenant_id(self, store, tenant_id):
        with pytest.raises(ValidationError):
            await store.create_tenant(tenant_id)

    async def test_get_tenant(self, store):
        assert await store.get_tenant("acme") is None
        await store.create_tenant("acme")
        assert (await store.get_tenant("acme")).id == "acme"


class TestEmails:
    """Email registration and tenant-scoped lookup."""

    async def test_create_email_auto_creates_tenant(self, store):
        email = await store.create_email("acme", subject="Welcome", recipient="a@example.com")
        assert email.id == 1
        assert email.tenant_id == "acme"
        assert email.subject == "Welcome"
        assert email.recipient == "a@example.com"
        assert (await store.get_tenant("acme")) is not None

    async def test_email_ids_are_monotonic_across_tenants(self, store):
        ids = [
            (await store.create_email("acme")).id,
            (await store.create_email("globex")).id,
            (await store.create_email("acme")).id,
        ]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3

    async def test_get_email_is_tenant_scoped(self, store):
        email = await store.create_email("acme")
        assert (await store.get_email("acme", email.id)).id == email.id
        assert await store.get_email("globex", email.id) is None
        assert await store.get_email("acme", email.id + 100) is None

    async def test_create_email_rejects_empty_tenant(self, store):
        with pytest.raises(ValidationError):
            await store.create_email("")


class TestEvents:
    """Appending and listing events."""

    async def test_append_open(self, store):
        email = await store.create_email("acme")
        before = datetime.now(timezone.utc)
        new_event = await store.append_event(
            "acme", email.id, EventType.OPEN, user_agent="Mail/1.0", ip_address="203.0.113.7"
        )
        assert new_event.id is not None
        assert new_event.event_type == "open"
        assert new_event.timestamp >= before
        assert new_event.user_agent == "Mail/1.0"
        assert new_event.ip_address == "203.0.113.7"
        assert new_event.url is None

    async def test_append_click_keeps_url(self, store):
        email = await store.create_email("acme")
        new_event = await store.append_event("acme", email.id, "click", url="https://example.com")
        assert new_event.event_type == "click"
        assert new_event.url == "https://example.com"

    async def test_click_requires_url(self, store):
        email = await store.create_email("acme")
        with pytest.raises(ValidationError):
            await store.append_event("acme", email.id, EventType.CLICK)

    async def test_unknown_event_type(self, store):
        email = await store.create_email("acme")
        with pytest.raises(ValidationError):
            await store.append_event("acme", email.id, "bounce")

    async def test_unknown_email(self, store):
        await store.create_tenant("acme")
        with pytest.raises(NotFoundError):
            await store.append_event("acme", 42, EventType.OPEN)

    async def test_cross_tenant_append_is_rejected(self, store):
        email = await store.create_email("acme")
        with pytest.raises(NotFoundError):
            await store.append_event("globex", email.id, EventType.OPEN)
        assert await collect(store.list_events("acme")) == []

    async def test_list_events_is_ordered_and_scoped(self, store):
        first = await store.create_email("acme")
        second = await store.create_email("acme")
        other = await store.create_email("globex")

        await store.append_event("acme", first.id, EventType.OPEN)
        await store.append_event("globex", other.id, EventType.OPEN)
        await store.append_event("acme", second.id, EventType.CLICK, url="https://example.com")
        await store.append_event("acme", first.id, EventType.OPEN)

        events = await collect(store.list_events("acme"))
        assert [e.email_id for e in events] == [first.id, second.id, first.id]
        timestamps = [e.timestamp for e in events]
        assert timestamps == sorted(timestamps)

        only_first = await collect(store.list_events("acme", first.id))
        assert [e.email_id for e in only_first] == [first.id, first.id]

        assert await collect(store.list_events("globex", first.id)) == []
        assert [e.email_id for e in await collect(store.list_events("globex"))] == [other.id]

    async def test_list_events_pages_through_everything(self, store):
        store.list_page_size = 2
        email = await store.create_email("acme")
        appended = [(await store.append_event("acme", email.id, EventType.OPEN)).id for _ in range(5)]

        listed = [e.id for e in await collect(store.list_events("acme", email.id))]
        assert listed == appended

    async def test_list_events_is_restartable(self, store):
        email = await store.create_email("acme")
        await store.append_event("acme", email.id, EventType.OPEN)
        assert len(await collect(store.list_events("acme"))) == 1

        await store.append_event("acme", email.id, EventType.OPEN)
        assert len(await collect(store.list_events("acme"))) == 2

    async def test_list_events_of_empty_store(self, store):
        assert await collect(store.list_events("acme")) == []

    async def test_concurrent_appends_lose_nothing(self, store):
        email = await store.create_email("acme")
        writers = 25

        appended = await asyncio.gather(
            *(store.append_event("acme", email.id, EventType.OPEN) for _ in range(writers))
        )

        ids = [e.id for e in appended]
        assert len(set(ids)) == writers
        listed = await collect(store.list_events("acme", email.id))
        assert sorted(e.id for e in listed) == sorted(ids)

    async def test_concurrent_email_creation_yields_distinct_ids(self, store):
        emails = await asyncio.gather(*(store.create_email(f"tenant-{i % 3}") for i in range(12)))
        assert len({e.id for e in emails}) == 12


class TestWriteSerialization:
    """Write lock timeouts, foreign file locks and unhealthy-store behaviour."""

    async def test_writer_times_out_while_lock_is_held(self, settings):
        store = Store(settings.get_database_url, write_timeout=0.05)
        async with store:
            email = await store.create_email("acme")
            await store._write_lock.acquire()
            try:
                with pytest.raises(StoreBusyError):
                    await store.append_event("acme", email.id, EventType.OPEN)
            finally:
                store._write_lock.release()

            # Nothing was written and the store keeps working
            assert await collect(store.list_events("acme")) == []
            await store.append_event("acme", email.id, EventType.OPEN)
            assert len(await collect(store.list_events("acme"))) == 1

    async def test_file_locked_by_another_connection_is_busy(self, settings):
        store = Store(settings.get_database_url, busy_timeout_ms=100)
        async with store:
            email = await store.create_email("acme")

            blocker = sqlite3.connect(settings.database_path, isolation_level=None)
            try:
                blocker.execute("BEGIN IMMEDIATE")
                with pytest.raises(StoreBusyError):
                    await store.append_event("acme", email.id, EventType.OPEN)
            finally:
                blocker.execute("ROLLBACK")
                blocker.close()

            assert store.healthy
            assert await collect(store.list_events("acme")) == []
            await store.append_event("acme", email.id, EventType.OPEN)
            assert len(await collect(store.list_events("acme"))) == 1

    async def test_unhealthy_store_refuses_writes_but_serves_reads(self, store):
        email = await store.create_email("acme")
        store.healthy = False

        with pytest.raises(StoreCorruptionError):
            await store.append_event("acme", email.id, EventType.OPEN)
        with pytest.raises(StoreCorruptionError):
            await store.create_email("acme")

        assert (await store.get_email("acme", email.id)).id == email.id
