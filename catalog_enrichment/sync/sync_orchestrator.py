"""
Sync Orchestrator

Wires one run against one store (tenant):

    acquire lock -> connect store -> read store config -> init status
        -> select / fetch -> BatchProcessor -> finish status -> release lock

Fatal errors (lock, store connection, catalog fetch) move the status to
`error`, are logged and re-raised; the lock is released in every case.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from catalog_enrichment.enrichment import Capabilities, ImageFetcher, build_capabilities
from catalog_enrichment.errors import StoreConnectionError
from catalog_enrichment.models import JobState, Vocabulary
from catalog_enrichment.normalization import VariantNormalizer
from catalog_enrichment.storage import DocumentStore, get_document_store
from catalog_enrichment.sync.batch_processor import BatchProcessor, BatchResult
from catalog_enrichment.sync.catalog_fetcher import CatalogFetcher, SourceConfig, create_fetcher
from catalog_enrichment.sync.lock_manager import LockManager
from catalog_enrichment.sync.progress_log_sink import ProgressLogSink
from catalog_enrichment.sync.reprocessing_selector import SYNC_MODE_TEXT, ReprocessingSelector, ReprocessOptions
from configs import get_settings

logger = logging.getLogger(__name__)

RunBody = Callable[[BatchProcessor, Dict[str, Any]], Awaitable[BatchResult]]


class SyncOrchestrator:
    """
    Runs ingest and reprocessing passes for one store.

    Collaborators default to the ones configured in settings; tests inject
    their own store, capabilities and lock directory.
    """

    def __init__(
        self,
        db_name: str,
        settings=None,
        store: Optional[DocumentStore] = None,
        capabilities: Optional[Capabilities] = None,
        lock_manager: Optional[LockManager] = None,
        image_fetcher: Optional[ImageFetcher] = None,
    ):
        self.db_name = db_name
        self.settings = settings or get_settings()
        self.store = store or get_document_store(self.settings)
        self.capabilities = capabilities if capabilities is not None else build_capabilities(self.settings)
        self.lock_manager = lock_manager or LockManager(self.settings.LOCK_DIR)
        self.image_fetcher = image_fetcher or ImageFetcher(
            concurrency=self.settings.IMAGE_FETCH_CONCURRENCY,
            max_images=self.settings.MAX_CLASSIFICATION_IMAGES,
            timeout=self.settings.IMAGE_FETCH_TIMEOUT,
        )
        self.selector = ReprocessingSelector(self.store)
        self.sink = ProgressLogSink(self.store, db_name, max_logs=self.settings.SYNC_STATUS_MAX_LOGS)

        logger.info(f"🎯 Initialized Sync Orchestrator for {db_name} "
                    f"(capabilities: {', '.join(self.capabilities.available) or 'none'})")

    def _processor(self) -> BatchProcessor:
        return BatchProcessor(
            store=self.store,
            sink=self.sink,
            lock_manager=self.lock_manager,
            capabilities=self.capabilities,
            image_fetcher=self.image_fetcher,
            ingest_concurrency=self.settings.INGEST_CONCURRENCY,
            max_images=self.settings.MAX_CLASSIFICATION_IMAGES,
        )

    async def connect_store(self) -> None:
        """Connect with bounded retries, waiting 2^attempt seconds between attempts."""
        attempts = max(1, self.settings.STORE_CONNECT_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                await self.store.connect()
                return
            except StoreConnectionError as e:
                if attempt == attempts:
                    logger.error(f"❌ Could not connect to the document store after {attempts} attempts: {e}")
                    raise
                delay = 2 ** attempt
                logger.warning(f"⚠️ Store connection attempt {attempt}/{attempts} failed: {e}. Retrying in {delay}s...")
                await asyncio.sleep(delay)

    async def load_store_config(self) -> Dict[str, Any]:
        config = await self.store.get_store_config(self.db_name)
        if config is None:
            logger.warning(f"⚠️ No store config for {self.db_name}, using defaults")
            return {}
        return config

    async def _run(self, state: JobState, body: RunBody) -> BatchResult:
        self.lock_manager.acquire(self.db_name)
        try:
            await self.connect_store()
            config = await self.load_store_config()
            await self.sink.init(state=state)
            result = await body(self._processor(), config)
            if result.state is JobState.DONE:
                await self.sink.finish(JobState.DONE)
            return result

        except Exception as e:
            await self._record_failure(e)
            raise
        finally:
            self.lock_manager.release(self.db_name)

    async def _record_failure(self, error: Exception) -> None:
        logger.error(f"❌ Sync run for {self.db_name} failed: {error}")
        try:
            await self.sink.append(f"❌ Run failed: {error}", level=logging.ERROR)
            await self.sink.finish(JobState.ERROR)
        except Exception as e:
            # Store unreachable: the error only reaches the process log
            logger.error(f"❌ Could not record failure status for {self.db_name}: {e}")

    @staticmethod
    def _sync_mode(config: Dict[str, Any], sync_mode: Optional[str]) -> str:
        return (sync_mode or config.get("syncMode") or SYNC_MODE_TEXT).lower()

    async def reprocess_products(
        self,
        options: Optional[ReprocessOptions] = None,
        sync_mode: Optional[str] = None,
        vocabulary: Optional[Vocabulary] = None,
    ) -> BatchResult:
        """Reprocess the eligible stored products sequentially."""
        options = options or ReprocessOptions()

        async def body(processor: BatchProcessor, config: Dict[str, Any]) -> BatchResult:
            mode = self._sync_mode(config, sync_mode)
            vocab = vocabulary or Vocabulary.from_store_config(config)
            if vocab.is_empty() and options.classifies:
                await self.sink.append("⚠️ Vocabulary is empty - classification will yield no labels",
                                       level=logging.WARNING)

            products, product_filter = await self.selector.select_eligible(self.db_name, mode, options)
            await self.sink.append(f"🔍 {len(products)} products eligible ({product_filter.describe()})")
            await self.sink.set_total(len(products))
            return await processor.run_reprocessing(products, vocab, mode, options)

        return await self._run(JobState.REPROCESSING, body)

    async def ingest_catalog(
        self,
        source: Optional[SourceConfig] = None,
        vocabulary: Optional[Vocabulary] = None,
        sync_mode: Optional[str] = None,
        fetcher: Optional[CatalogFetcher] = None,
        options: Optional[ReprocessOptions] = None,
    ) -> BatchResult:
        """Fetch the full catalog, upsert it and enrich products that were never embedded."""

        async def body(processor: BatchProcessor, config: Dict[str, Any]) -> BatchResult:
            source_config = source or SourceConfig.from_store_config(config)
            catalog_fetcher = fetcher or create_fetcher(source_config, self.settings)
            mode = self._sync_mode(config, sync_mode)
            vocab = vocabulary or Vocabulary.from_store_config(config)

            await self.sink.append(f"📥 Fetching catalog from {source_config.platform}...")
            raw_products = await catalog_fetcher.fetch_all()
            await self.sink.append(f"📦 Fetched {len(raw_products)} products")

            normalizer = VariantNormalizer(price_in_minor_units=source_config.price_in_minor_units)
            return await processor.run_ingest(raw_products, vocab, mode, normalizer=normalizer, options=options)

        return await self._run(JobState.RUNNING, body)

    async def find_missing_embeddings(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        await self.connect_store()
        return await self.selector.find_products_without_embeddings(self.db_name, limit=limit)

    async def generate_missing_embeddings(self, limit: Optional[int] = None) -> BatchResult:
        """Embeddings-only pass over in-stock products that have description1 but no embedding."""
        return await self.reprocess_products(ReprocessOptions.embeddings_only(limit))

    def request_stop(self) -> bool:
        return self.lock_manager.request_stop(self.db_name)

    async def get_status(self) -> Optional[Dict[str, Any]]:
        await self.connect_store()
        return await self.store.get_sync_status(self.db_name)

    async def close(self) -> None:
        await self.store.close()
