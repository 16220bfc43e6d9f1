"""
Tests for reprocessing eligibility and stamp backfill.
"""

import pytest

from catalog_enrichment.models import FieldState, field_state
from catalog_enrichment.sync import ReprocessingSelector, ReprocessOptions
from catalog_enrichment.sync.reprocessing_selector import STAMP_FIELD, ProductFilter, missing_embedding

from conftest import make_product, seed_products


async def eligible_ids(store, db_name, sync_mode="text", **options):
    selector = ReprocessingSelector(store)
    eligible, _ = await selector.select_eligible(db_name, sync_mode, ReprocessOptions(**options))
    return [doc["id"] for doc in eligible]


class TestIncrementalSelection:

    async def test_fully_classified_product_is_excluded(self, store, db_name):
        await seed_products(store, db_name, [make_product("p1")])
        assert await eligible_ids(store, db_name) == []

    @pytest.mark.parametrize("field", ["category", "type", "softCategory", STAMP_FIELD])
    @pytest.mark.parametrize("cleared", ["absent", None, []])
    async def test_clearing_any_field_includes_product(self, store, db_name, field, cleared):
        doc = make_product("p1")
        if cleared == "absent":
            del doc[field]
        else:
            doc[field] = cleared
        await seed_products(store, db_name, [doc, make_product("p2")])

        assert await eligible_ids(store, db_name) == ["p1"]

    async def test_image_mode_selects_every_gated_product(self, store, db_name):
        await seed_products(store, db_name, [make_product("p1"), make_product("p2")])
        assert await eligible_ids(store, db_name, sync_mode="image") == ["p1", "p2"]

    async def test_reprocess_all(self, store, db_name):
        await seed_products(store, db_name, [make_product("p1")])
        assert await eligible_ids(store, db_name, reprocess_all=True) == ["p1"]


class TestGate:

    async def test_out_of_stock_and_unembedded_are_excluded(self, store, db_name):
        await seed_products(store, db_name, [
            make_product("oos", stockStatus="outofstock", category=[]),
            make_product("no_vec", embedding=None, category=[]),
            make_product("empty_vec", embedding=[], category=[]),
            make_product("ok", category=[]),
        ])
        assert await eligible_ids(store, db_name) == ["ok"]
        assert await eligible_ids(store, db_name, sync_mode="image") == ["ok"]

    async def test_gate_predicates(self):
        product_filter = ProductFilter()
        assert not product_filter.passes_gate(make_product("a", stockStatus="outofstock"))
        assert not product_filter.passes_gate(make_product("b", embedding=None))
        assert not product_filter.passes_gate(make_product("c", embedding=[]))
        assert product_filter.passes_gate(make_product("d"))

        backorder = make_product("e")
        del backorder["stockStatus"]
        backorder["stock_status"] = "onbackorder"
        assert product_filter.passes_gate(backorder)

    async def test_include_missing_embeddings_admits_described_products(self):
        product_filter = ProductFilter(include_missing_embeddings=True)
        assert product_filter.passes_gate(make_product("a", embedding=None, description1="text"))
        assert not product_filter.passes_gate(make_product("b", embedding=None, description1="  "))


class TestRestrictions:

    async def test_target_category(self, store, db_name):
        await seed_products(store, db_name, [
            make_product("shoe", category=["Shoes"]),
            make_product("bag", category=["Bags"]),
            make_product("none", category=[]),
        ])
        assert await eligible_ids(store, db_name, sync_mode="image", target_category="Bags") == ["bag"]

    async def test_missing_soft_category_only_distinguishes_absent_from_empty(self, store, db_name):
        absent = make_product("absent")
        del absent["softCategory"]
        await seed_products(store, db_name, [
            absent,
            make_product("empty", softCategory=[]),
            make_product("null", softCategory=None),
            make_product("no_category", category=[], softCategory=None),
        ])
        no_category = await store.get_product(db_name, "no_category")
        assert field_state(no_category, "softCategory") is FieldState.NULL

        assert await eligible_ids(store, db_name, missing_soft_category_only=True) == ["absent"]

    async def test_limit(self, store, db_name):
        await seed_products(store, db_name, [make_product(f"p{i}", category=[]) for i in range(5)])
        assert await eligible_ids(store, db_name, limit=2) == ["p0", "p1"]


class TestStampBackfill:

    async def test_backfill_from_fetched_at_or_now(self, store, db_name):
        from_fetched = make_product("p1", fetchedAt="2024-05-01T00:00:00Z")
        del from_fetched[STAMP_FIELD]
        to_now = make_product("p2", fetchedAt=None, **{STAMP_FIELD: None})
        await seed_products(store, db_name, [from_fetched, to_now, make_product("p3")])

        selector = ReprocessingSelector(store)
        eligible, _ = await selector.select_eligible(db_name, "text", ReprocessOptions())

        # Products missing a stamp are still selected by the run that backfills them
        assert [doc["id"] for doc in eligible] == ["p1", "p2"]
        assert (await store.get_product(db_name, "p1"))[STAMP_FIELD] == "2024-05-01T00:00:00Z"
        assert (await store.get_product(db_name, "p2"))[STAMP_FIELD].endswith("Z")
        assert (await store.get_product(db_name, "p3"))[STAMP_FIELD] == "2024-01-01T00:00:00Z"

    async def test_backfill_counts(self, store, db_name):
        docs = [make_product("a", **{STAMP_FIELD: None}), make_product("b", fetchedAt=None, **{STAMP_FIELD: ""})]
        await seed_products(store, db_name, docs)
        assert await ReprocessingSelector(store).backfill_stamps(db_name, docs) == (1, 1)


class TestMissingEmbeddings:

    def test_missing_embedding_predicate(self):
        assert missing_embedding(make_product("a", embedding=None))
        assert missing_embedding(make_product("b", embedding=[]))
        assert not missing_embedding(make_product("c"))
        assert not missing_embedding(make_product("d", embedding=None, stockStatus="outofstock"))

        no_stock_field = make_product("e", embedding=None)
        del no_stock_field["stockStatus"]
        assert missing_embedding(no_stock_field)

    async def test_find_products_without_embeddings(self, store, db_name):
        await seed_products(store, db_name, [make_product("a", embedding=None), make_product("b")])
        found = await ReprocessingSelector(store).find_products_without_embeddings(db_name)
        assert [doc["id"] for doc in found] == ["a"]
