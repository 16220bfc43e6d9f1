"""
Batch Processor

Runs enrichment over a set of products:

- run_reprocessing: strictly sequential over the eligible set, polling the
  store's lock before every product so a removed marker stops the run
- run_ingest: bounded worker pool over freshly fetched raw products; workers
  own their product until the final upsert and are not interrupted

A failure on one product is logged with its id and never aborts the batch.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from catalog_enrichment.enrichment import (
    Capabilities,
    ClassificationClient,
    DescriptionEnricher,
    EmbeddingClient,
    ImageFetcher,
    get_product_description,
)
from catalog_enrichment.enrichment.image_fetcher import select_image_urls
from catalog_enrichment.models import JobState, Vocabulary, utc_now_iso
from catalog_enrichment.normalization import IN_STOCK, VariantNormalizer, build_product, clean_html, image_urls, parse_price
from catalog_enrichment.storage import DocumentStore
from catalog_enrichment.sync.lock_manager import LockManager
from catalog_enrichment.sync.progress_log_sink import ProgressLogSink
from catalog_enrichment.sync.reprocessing_selector import (
    STAMP_FIELD,
    SYNC_MODE_IMAGE,
    ReprocessOptions,
    has_embedding,
)

logger = logging.getLogger(__name__)

# Written only when the ingest upsert creates the document
INSERT_DEFAULTS = {
    "embedding": None,
    "category": [],
    "type": [],
    "softCategory": [],
    "description1": None,
}


@dataclass
class BatchResult:
    """Outcome of one batch; `state` is DONE, or IDLE when stopped or empty."""
    logs: List[str] = field(default_factory=list)
    total: int = 0
    processed: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    stopped: bool = False
    state: JobState = JobState.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "updated": self.updated,
            "failed": self.failed,
            "skipped": self.skipped,
            "stopped": self.stopped,
            "state": self.state.value,
        }


class BatchProcessor:
    """
    Per-product enrichment and persistence for one store.

    Args:
        store: document store holding the products
        sink: progress/log sink of the current run
        lock_manager: polled between products during reprocessing
        capabilities: injected AI capabilities (any may be None)
        image_fetcher: fetches classification images; None disables image context
        ingest_concurrency: worker pool width for run_ingest
        max_images: image cap per product
    """

    def __init__(
        self,
        store: DocumentStore,
        sink: ProgressLogSink,
        lock_manager: LockManager,
        capabilities: Optional[Capabilities] = None,
        image_fetcher: Optional[ImageFetcher] = None,
        ingest_concurrency: int = 3,
        max_images: int = 3,
    ):
        capabilities = capabilities or Capabilities()
        self.store = store
        self.sink = sink
        self.lock_manager = lock_manager
        self.ingest_concurrency = max(1, ingest_concurrency)
        self.max_images = max_images

        self.classification = ClassificationClient(capabilities.classifier, image_fetcher)
        self.embeddings = EmbeddingClient(capabilities.embedder)
        self.descriptions = DescriptionEnricher(capabilities.describer, max_images=max_images)
        # Stored documents already hold major-unit prices
        self.normalizer = VariantNormalizer()

    @property
    def db_name(self) -> str:
        return self.sink.db_name

    # Reprocessing

    async def run_reprocessing(self, products: Sequence[Dict[str, Any]], vocabulary: Vocabulary,
                               sync_mode: str, options: Optional[ReprocessOptions] = None) -> BatchResult:
        options = options or ReprocessOptions()
        result = BatchResult(total=len(products))
        if not products:
            await self.sink.append("✅ No products need reprocessing")
            result.state = JobState.IDLE
            result.logs = list(self.sink.lines)
            return result

        await self.sink.append(f"🔄 Reprocessing {len(products)} products ({sync_mode} mode)")

        for index, doc in enumerate(products, start=1):
            if not self.lock_manager.is_held(self.db_name):
                await self.sink.append("🛑 Reprocessing stopped by user.")
                await self.sink.stopped()
                result.stopped = True
                result.state = JobState.IDLE
                break

            outcome = await self.reprocess_product(doc, vocabulary, sync_mode, options)
            result.processed += 1
            if outcome == "failed":
                result.failed += 1
            elif outcome == "skipped":
                result.skipped += 1
            else:
                result.updated += 1
            await self.sink.tick(index, len(products))

        if not result.stopped:
            await self.sink.append(
                f"✅ Reprocessing finished: {result.updated} updated, {result.skipped} skipped, "
                f"{result.failed} failed"
            )
        result.logs = list(self.sink.lines)
        return result

    async def reprocess_product(self, doc: Dict[str, Any], vocabulary: Vocabulary,
                                sync_mode: str, options: ReprocessOptions) -> str:
        """
        Rewrite one stored product. Returns "updated", "skipped" or "failed".

        The stamp, url, image and price are written even when enrichment fails,
        so a failing product is not retried again within the same run.
        """
        product_id = str(doc.get("id"))
        name = doc.get("name") or product_id
        update: Dict[str, Any] = {STAMP_FIELD: utc_now_iso()}

        failed = False
        try:
            if not get_product_description(doc).strip():
                await self.sink.append(f"⏭️ Skipping {name} ({product_id}): no description")
                await self._save(product_id, update)
                return "skipped"

            await self.sink.append(f"🟡 Processing {name} ({product_id})")
            urls = image_urls(doc)
            update.update(url=doc.get("url"), image=urls[0] if urls else None,
                          price=parse_price(doc.get("price")))
            if options.reprocess_variants:
                update.update(self.normalizer.normalize(doc).to_dict())
            await self.enrich(doc, update, vocabulary, sync_mode, options)
        except Exception as e:
            failed = True
            await self.sink.append(f"❌ Error processing product {product_id}: {e}", level=logging.ERROR)

        saved = await self._save(product_id, update)
        return "failed" if failed or not saved else "updated"

    async def enrich(self, doc: Mapping[str, Any], update: Dict[str, Any], vocabulary: Vocabulary,
                     sync_mode: str, options: ReprocessOptions) -> None:
        """
        Fill `update` with description1, embedding and classification fields.

        Fields are added as soon as they are produced so a later failure keeps
        the earlier results.
        """
        image_mode = sync_mode == SYNC_MODE_IMAGE
        name = doc.get("name") or str(doc.get("id"))

        if options.reprocess_descriptions:
            if image_mode:
                description1 = await self.descriptions.build_image_description(doc)
            else:
                description1 = await self.descriptions.build_text_description(doc)
        else:
            description1 = doc.get("description1") or clean_html(get_product_description(doc))

        if options.translate_before_embedding and description1:
            description1 = await self.descriptions.translate(description1)
        if description1:
            update["description1"] = description1

        if options.reprocess_embeddings:
            embedding = await self.embeddings.embed(description1)
            if embedding is not None:
                update["embedding"] = embedding
            else:
                await self.sink.append(f"⚠️ No embedding for {name}", level=logging.WARNING)

        if not options.classifies:
            return

        classification = await self.classification.classify(
            description1 or "",
            name,
            vocabulary,
            image_urls=select_image_urls(image_urls(doc), self.max_images) if image_mode else None,
            variants=update.get("variants", doc.get("variants")),
        )
        if options.reprocess_hard_categories:
            update["category"] = classification.category
        if options.reprocess_types:
            update["type"] = classification.type
        if options.reprocess_soft_categories:
            update["softCategory"] = classification.softCategory
        await self.sink.append(
            f"🏷️ {name}: category={classification.category} type={classification.type} "
            f"softCategory={classification.softCategory}"
        )

    async def _save(self, product_id: str, update: Dict[str, Any]) -> bool:
        try:
            await self.store.update_product(self.db_name, product_id, update)
            return True
        except Exception as e:
            await self.sink.append(f"❌ Failed to save product {product_id}: {e}", level=logging.ERROR)
            return False

    # Initial ingest

    async def run_ingest(self, raw_products: Sequence[Mapping[str, Any]], vocabulary: Vocabulary,
                         sync_mode: str, normalizer: Optional[VariantNormalizer] = None,
                         options: Optional[ReprocessOptions] = None) -> BatchResult:
        """Upsert every raw product and enrich the in-stock ones that have no embedding yet."""
        normalizer = normalizer or VariantNormalizer()
        options = options or ReprocessOptions()

        # One worker per product id
        unique: Dict[str, Mapping[str, Any]] = {}
        for raw in raw_products:
            unique.setdefault(str(raw.get("id", "")), raw)
        items = list(unique.values())

        result = BatchResult(total=len(items))
        await self.sink.set_total(len(items))
        await self.sink.append(f"🚀 Ingesting {len(items)} products with {self.ingest_concurrency} workers")

        semaphore = asyncio.Semaphore(self.ingest_concurrency)
        done = 0

        async def worker(raw: Mapping[str, Any]) -> str:
            nonlocal done
            async with semaphore:
                outcome = await self.ingest_product(raw, vocabulary, sync_mode, normalizer, options)
            done += 1
            await self.sink.tick(done, len(items))
            return outcome

        outcomes = await asyncio.gather(*(worker(raw) for raw in items))

        result.processed = len(outcomes)
        result.updated = outcomes.count("updated")
        result.failed = outcomes.count("failed")
        result.skipped = outcomes.count("skipped")
        await self.sink.append(
            f"✅ Ingest finished: {result.updated} enriched, {result.skipped} stored without enrichment, "
            f"{result.failed} failed"
        )
        result.logs = list(self.sink.lines)
        return result

    async def ingest_product(self, raw: Mapping[str, Any], vocabulary: Vocabulary, sync_mode: str,
                             normalizer: VariantNormalizer, options: ReprocessOptions) -> str:
        product_id = str(raw.get("id", ""))
        try:
            product = build_product(raw, normalizer)
            created = await self.store.upsert_product(
                self.db_name, product.id, product.basic_fields(), set_on_insert=dict(INSERT_DEFAULTS)
            )
            logger.debug(f"{'Created' if created else 'Updated'} product {product.id}")

            if product.stockStatus != IN_STOCK:
                return "skipped"
            stored = await self.store.get_product(self.db_name, product.id) or product.to_dict()
            if has_embedding(stored):
                return "skipped"

            update: Dict[str, Any] = {STAMP_FIELD: utc_now_iso()}
            try:
                await self.enrich(stored, update, vocabulary, sync_mode, options)
            finally:
                await self.store.update_product(self.db_name, product.id, update)
            await self.sink.append(f"✅ Enriched {product.name} ({product.id})")
            return "updated"

        except Exception as e:
            await self.sink.append(f"❌ Error processing product {product_id}: {e}", level=logging.ERROR)
            return "failed"
