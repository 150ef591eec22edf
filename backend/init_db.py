#!/usr/bin/env python
"""Simple database initialization script."""
import asyncio

from little_bell.config import settings
from little_bell.exceptions import StoreError
from little_bell.store import Store


async def init_db():
    """Create the store file and schema, then run an integrity check."""
    store = Store.from_settings(settings)
    try:
        await store.open()
        print(f"✅ Store ready at {settings.database_path or ':memory:'}")
        if not store.healthy:
            print("❌ Integrity check failed, the store refuses writes")
    except StoreError as e:
        print(f"❌ Error: {e}")
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(init_db())
