"""
Redis document store against a real server.

Run with REDIS_URL pointing at a disposable database, e.g.
    REDIS_URL=redis://localhost:6379/15 pytest -m integration
"""

import asyncio
import os
import uuid

import pytest

from catalog_enrichment.storage import RedisDocumentStore

REDIS_URL = os.getenv("REDIS_URL")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not REDIS_URL, reason="REDIS_URL not set"),
]


@pytest.fixture
async def redis_store():
    store = RedisDocumentStore(REDIS_URL)
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def redis_db():
    return f"test-{uuid.uuid4().hex[:8]}"


async def test_upsert_and_find(redis_store, redis_db):
    assert await redis_store.upsert_product(redis_db, "1", {"name": "A"}, set_on_insert={"embedding": None})
    assert not await redis_store.upsert_product(redis_db, "1", {"name": "A2"}, set_on_insert={"embedding": [1]})
    await redis_store.upsert_product(redis_db, "2", {"name": "B"})

    stored = await redis_store.get_product(redis_db, "1")
    assert stored == {"id": "1", "embedding": None, "name": "A2"}
    assert [d["id"] for d in await redis_store.find_products(redis_db)] == ["1", "2"]
    assert await redis_store.bulk_update_products(redis_db, {"2": {"name": "B2"}, "9": {"name": "x"}}) == 1


async def test_status_logs_are_capped(redis_store, redis_db):
    await redis_store.set_sync_status(redis_db, {"state": "running", "logs": []})
    await redis_store.push_logs(redis_db, ["a", "b", "c"], max_logs=2)

    status = await redis_store.get_sync_status(redis_db)
    assert status["state"] == "running"
    assert status["logs"] == ["b", "c"]


async def test_concurrent_status_writes_keep_every_field(redis_store, redis_db):
    await redis_store.set_sync_status(redis_db, {"state": "reprocessing", "done": 0, "total": 3, "logs": []})

    await asyncio.gather(
        redis_store.set_sync_status(redis_db, {"done": 3, "progress": 100}),
        redis_store.set_sync_status(redis_db, {"stoppedAt": None, "updatedAt": "2024-01-01T00:00:00Z"}),
    )

    status = await redis_store.get_sync_status(redis_db)
    assert status["state"] == "reprocessing"
    assert status["done"] == 3
    assert status["progress"] == 100
    assert status["updatedAt"] == "2024-01-01T00:00:00Z"
    assert status["stoppedAt"] is None
