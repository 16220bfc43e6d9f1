"""
Configuration package for the catalog enrichment pipeline.

Usage:
    from configs import settings

    store = settings.STORAGE_PROVIDER
    width = settings.INGEST_CONCURRENCY
"""

from .settings import settings, get_settings, reload_settings, create_test_settings

__all__ = [
    "settings",
    "get_settings",
    "reload_settings",
    "create_test_settings"
]
