"""
Pipeline Error Classes

Run-level failures of the catalog enrichment pipeline. Anything raised from
here aborts a run; per-product and AI-capability failures are handled where
they occur and never surface as these exceptions.
"""

from typing import Optional


class CatalogEnrichmentError(Exception):
    """Base exception for all pipeline errors"""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self):
        return self.message


class ConfigurationError(CatalogEnrichmentError):
    """Raised when a run is started with missing or invalid configuration"""
    pass


class CatalogFetchError(CatalogEnrichmentError):
    """Raised when a catalog page cannot be fetched"""

    def __init__(self, message: str, source: str = None, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.source = source
        self.status_code = status_code

    def __str__(self):
        if self.source:
            return f"[{self.source}] {self.message}"
        return self.message


class NetworkFetchError(CatalogFetchError):
    """Transient network failure (timeout, reset, DNS, 429/5xx); retryable"""
    pass


class LockAcquisitionError(CatalogEnrichmentError):
    """Raised when the per-store processing lock cannot be created"""

    def __init__(self, message: str, db_name: str = None, lock_path: str = None, **kwargs):
        super().__init__(message, **kwargs)
        self.db_name = db_name
        self.lock_path = lock_path


class StoreConnectionError(CatalogEnrichmentError):
    """Raised when the document store stays unreachable after bounded retries"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, **kwargs)
        self.provider = provider
