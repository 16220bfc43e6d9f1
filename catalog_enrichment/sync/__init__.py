"""
Catalog sync: fetch, selection, locking, batch processing and run wiring.
"""

from .batch_processor import BatchProcessor, BatchResult
from .catalog_fetcher import (
    CatalogFetcher,
    ShopifyCatalogFetcher,
    SourceConfig,
    WooCommerceCatalogFetcher,
    create_fetcher,
)
from .lock_manager import LockManager
from .progress_log_sink import ProgressLogSink
from .reprocessing_selector import ProductFilter, ReprocessingSelector, ReprocessOptions

__all__ = [
    "BatchProcessor",
    "BatchResult",
    "CatalogFetcher",
    "ShopifyCatalogFetcher",
    "SourceConfig",
    "WooCommerceCatalogFetcher",
    "create_fetcher",
    "LockManager",
    "ProgressLogSink",
    "ProductFilter",
    "ReprocessingSelector",
    "ReprocessOptions",
]
