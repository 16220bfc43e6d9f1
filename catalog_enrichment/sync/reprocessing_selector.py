"""
Reprocessing Selector

Decides which stored products a reprocessing run touches.

Eligibility = gate AND mode predicate AND optional restrictions:

- gate: in stock and carrying a non-empty embedding
- image sync mode (or reprocess_all): every gated product
- text sync mode: products whose category, type or softCategory is
  unset/null/empty, or that have no classification stamp
- target_category: `category` contains the target label
- missing_soft_category_only: `category` populated and `softCategory`
  absent (an empty softCategory list is a classification result, not a gap)

Stamps (`categoryTypeProcessedAt`) missing on any product are backfilled from
`fetchedAt` (else now) after eligibility has been evaluated, so products
without a stamp are still picked up by the run that backfills them.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from catalog_enrichment.models import CLASSIFICATION_FIELDS, FieldState, field_state, utc_now_iso
from catalog_enrichment.normalization import IN_STOCK, stock_status_of
from catalog_enrichment.storage import DocumentStore

logger = logging.getLogger(__name__)

STAMP_FIELD = "categoryTypeProcessedAt"

SYNC_MODE_TEXT = "text"
SYNC_MODE_IMAGE = "image"


@dataclass
class ReprocessOptions:
    """Which field families a reprocessing pass rewrites, and which products it selects."""
    reprocess_hard_categories: bool = True
    reprocess_types: bool = True
    reprocess_soft_categories: bool = True
    reprocess_variants: bool = True
    reprocess_descriptions: bool = True
    reprocess_embeddings: bool = True
    translate_before_embedding: bool = False
    reprocess_all: bool = False
    include_missing_embeddings: bool = False
    missing_embeddings_only: bool = False
    target_category: Optional[str] = None
    missing_soft_category_only: bool = False
    limit: Optional[int] = None

    @property
    def classifies(self) -> bool:
        return self.reprocess_hard_categories or self.reprocess_types or self.reprocess_soft_categories

    @classmethod
    def embeddings_only(cls, limit: Optional[int] = None) -> "ReprocessOptions":
        """Options for backfilling products that were never embedded."""
        return cls(
            reprocess_hard_categories=False,
            reprocess_types=False,
            reprocess_soft_categories=False,
            reprocess_variants=False,
            reprocess_descriptions=False,
            reprocess_embeddings=True,
            reprocess_all=True,
            include_missing_embeddings=True,
            missing_embeddings_only=True,
            limit=limit,
        )


def has_embedding(doc: Dict[str, Any]) -> bool:
    embedding = doc.get("embedding")
    return isinstance(embedding, list) and len(embedding) > 0


@dataclass
class ProductFilter:
    image_mode: bool = False
    reprocess_all: bool = False
    include_missing_embeddings: bool = False
    missing_embeddings_only: bool = False
    target_category: Optional[str] = None
    missing_soft_category_only: bool = False

    def passes_gate(self, doc: Dict[str, Any]) -> bool:
        if stock_status_of(doc) != IN_STOCK:
            return False
        if has_embedding(doc):
            return True
        if self.include_missing_embeddings:
            description1 = doc.get("description1")
            return isinstance(description1, str) and bool(description1.strip())
        return False

    @staticmethod
    def needs_classification(doc: Dict[str, Any]) -> bool:
        if any(field_state(doc, key).needs_classification for key in CLASSIFICATION_FIELDS):
            return True
        return field_state(doc, STAMP_FIELD) in (FieldState.UNSET, FieldState.NULL, FieldState.EMPTY)

    def matches(self, doc: Dict[str, Any]) -> bool:
        if not self.passes_gate(doc):
            return False
        if self.missing_embeddings_only and has_embedding(doc):
            return False
        if not (self.image_mode or self.reprocess_all) and not self.needs_classification(doc):
            return False
        if self.target_category is not None:
            category = doc.get("category")
            if not isinstance(category, list) or self.target_category not in category:
                return False
        if self.missing_soft_category_only:
            if field_state(doc, "category") is not FieldState.POPULATED:
                return False
            if field_state(doc, "softCategory") is not FieldState.UNSET:
                return False
        return True

    def describe(self) -> str:
        parts = ["in stock", "with embedding" if not self.include_missing_embeddings else "with embedding or description1"]
        if self.image_mode:
            parts.append("image mode: all")
        elif self.reprocess_all:
            parts.append("reprocess all")
        else:
            parts.append("text mode: missing category/type/softCategory/stamp")
        if self.target_category is not None:
            parts.append(f"category contains '{self.target_category}'")
        if self.missing_soft_category_only:
            parts.append("category set, softCategory absent")
        return ", ".join(parts)


def missing_embedding(doc: Dict[str, Any]) -> bool:
    """Never embedded and not known to be out of stock."""
    if has_embedding(doc):
        return False
    return stock_status_of(doc, default=IN_STOCK) == IN_STOCK


class ReprocessingSelector:

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def build_filter(sync_mode: str, options: ReprocessOptions) -> ProductFilter:
        return ProductFilter(
            image_mode=sync_mode == SYNC_MODE_IMAGE,
            reprocess_all=options.reprocess_all,
            include_missing_embeddings=options.include_missing_embeddings,
            missing_embeddings_only=options.missing_embeddings_only,
            target_category=options.target_category,
            missing_soft_category_only=options.missing_soft_category_only,
        )

    async def backfill_stamps(self, db_name: str, docs: List[Dict[str, Any]]) -> Tuple[int, int]:
        """
        Give every product without a stamp one: its fetchedAt, else now.

        Updates `docs` in place and returns (from_fetched_at, set_to_now).
        """
        now = utc_now_iso()
        updates: Dict[str, Dict[str, Any]] = {}
        from_fetched = to_now = 0
        for doc in docs:
            if field_state(doc, STAMP_FIELD) is FieldState.POPULATED:
                continue
            if doc.get("fetchedAt"):
                stamp = doc["fetchedAt"]
                from_fetched += 1
            else:
                stamp = now
                to_now += 1
            doc[STAMP_FIELD] = stamp
            updates[str(doc.get("id"))] = {STAMP_FIELD: stamp}

        if updates:
            await self.store.bulk_update_products(db_name, updates)
        return from_fetched, to_now

    async def select_eligible(self, db_name: str, sync_mode: str,
                              options: ReprocessOptions) -> Tuple[List[Dict[str, Any]], ProductFilter]:
        product_filter = self.build_filter(sync_mode, options)
        docs = await self.store.find_products(db_name)

        eligible = [doc for doc in docs if product_filter.matches(doc)]
        from_fetched, to_now = await self.backfill_stamps(db_name, docs)
        if from_fetched or to_now:
            logger.info(f"🧭 Backfilled stamps for {db_name}: {from_fetched} from fetchedAt, {to_now} to now")

        if options.limit is not None:
            eligible = eligible[: options.limit]
        logger.info(f"🔍 {len(eligible)}/{len(docs)} products eligible ({product_filter.describe()})")
        return eligible, product_filter

    async def find_products_without_embeddings(self, db_name: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self.store.find_products(db_name, predicate=missing_embedding, limit=limit)
