"""
Tests for the local JSON document store.
"""

import os
from unittest.mock import patch

import pytest

from catalog_enrichment.storage import LocalDocumentStore, RedisDocumentStore, get_document_store
from configs import create_test_settings


class TestLocalDocumentStore:

    async def test_upsert_creates_with_insert_defaults(self, store, db_name):
        created = await store.upsert_product(db_name, "1", {"name": "Runner"}, set_on_insert={"embedding": None})

        assert created
        assert await store.get_product(db_name, "1") == {"id": "1", "embedding": None, "name": "Runner"}

    async def test_upsert_keeps_unrelated_fields(self, store, db_name):
        await store.upsert_product(db_name, "1", {"name": "Runner", "embedding": [1.0]})

        created = await store.upsert_product(db_name, "1", {"name": "Runner v2"}, set_on_insert={"embedding": None})

        stored = await store.get_product(db_name, "1")
        assert not created
        assert stored["name"] == "Runner v2"
        assert stored["embedding"] == [1.0]

    async def test_update_missing_product(self, store, db_name):
        assert not await store.update_product(db_name, "nope", {"name": "x"})
        assert await store.get_product(db_name, "nope") is None

    async def test_bulk_update_counts_existing_only(self, store, db_name):
        await store.upsert_product(db_name, "1", {"name": "A"})
        await store.upsert_product(db_name, "2", {"name": "B"})

        modified = await store.bulk_update_products(db_name, {"1": {"stamp": "x"}, "3": {"stamp": "y"}})

        assert modified == 1
        assert (await store.get_product(db_name, "1"))["stamp"] == "x"

    async def test_find_products_in_insertion_order(self, store, db_name):
        for pid in ("b", "a", "c"):
            await store.upsert_product(db_name, pid, {"keep": pid != "a"})

        assert [d["id"] for d in await store.find_products(db_name)] == ["b", "a", "c"]
        assert [d["id"] for d in await store.find_products(db_name, lambda d: d["keep"])] == ["b", "c"]
        assert [d["id"] for d in await store.find_products(db_name, limit=1)] == ["b"]

    async def test_stores_are_isolated(self, store):
        await store.upsert_product("one", "1", {"name": "A"})
        assert await store.find_products("two") == []

    async def test_status_and_capped_logs(self, store, db_name):
        assert await store.get_sync_status(db_name) is None

        await store.set_sync_status(db_name, {"state": "running"})
        await store.push_logs(db_name, ["a", "b"], max_logs=3)
        await store.push_logs(db_name, ["c", "d"], max_logs=3)
        await store.set_sync_status(db_name, {"done": 1})

        status = await store.get_sync_status(db_name)
        assert status["state"] == "running"
        assert status["done"] == 1
        assert status["logs"] == ["b", "c", "d"]

    async def test_store_config_round_trip_keeps_unicode(self, store, db_name):
        config = {"categories": ["יין אדום"], "syncMode": "image"}
        await store.save_store_config(db_name, config)
        assert await store.get_store_config(db_name) == config

    async def test_connect_creates_base_dir(self, tmp_path):
        base_dir = tmp_path / "fresh"
        await LocalDocumentStore(base_dir=str(base_dir)).connect()
        assert base_dir.is_dir()

    async def test_update_rewrites_only_the_touched_product(self, store, db_name):
        for pid in ("1", "2", "3"):
            await store.upsert_product(db_name, pid, {"name": pid, "embedding": [0.1] * 8})

        with patch.object(LocalDocumentStore, "_dump", wraps=LocalDocumentStore._dump) as dump:
            assert await store.update_product(db_name, "2", {"stamp": "x"})

        written = [os.path.basename(call.args[0]) for call in dump.call_args_list]
        assert written == ["2.json"]
        assert (await store.get_product(db_name, "1"))["embedding"] == [0.1] * 8

    async def test_product_ids_are_safe_file_names(self, store, db_name):
        await store.upsert_product(db_name, "gid://shopify/Product/1", {"name": "A"})

        assert (await store.get_product(db_name, "gid://shopify/Product/1"))["name"] == "A"
        assert [d["id"] for d in await store.find_products(db_name)] == ["gid://shopify/Product/1"]


class TestDocumentStoreFactory:

    def test_local_provider(self, tmp_path):
        store = get_document_store(create_test_settings(LOCAL_STORAGE_DIR=str(tmp_path)))
        assert isinstance(store, LocalDocumentStore)
        assert store.base_dir == str(tmp_path)

    def test_redis_provider(self):
        store = get_document_store(create_test_settings(STORAGE_PROVIDER="redis", REDIS_URL="redis://cache:6379"))
        assert isinstance(store, RedisDocumentStore)
        assert store.redis_url == "redis://cache:6379"

    def test_redis_product_key(self):
        assert RedisDocumentStore._product_key("shop", "42") == "product:shop:42"
