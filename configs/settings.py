"""
Configuration Management System

Centralized configuration for the catalog enrichment pipeline. Values come
from the environment (or a local .env file) and cover storage selection,
AI capability credentials, fetch/retry tuning and worker pool sizing.
"""

import os
import logging
import tempfile
from typing import Dict, Optional, Any
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Centralized configuration for the catalog enrichment pipeline.

    Features:
    - Environment-aware settings (dev, staging, prod)
    - Document store selection (local JSON or Redis)
    - OpenAI credentials and model selection
    - Catalog fetch retry and timeout tuning
    - Worker pool and image fetch concurrency bounds
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================================================
    # Environment Configuration
    # ============================================================================

    ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # ============================================================================
    # Storage Configuration
    # ============================================================================

    STORAGE_PROVIDER: str = Field(
        default="local",
        description="Document store backend: local or redis",
    )
    LOCAL_STORAGE_DIR: str = Field(
        default="local/catalog_store",
        description="Root directory of the local JSON document store",
    )
    REDIS_URL: Optional[str] = Field(default=None, description="Explicit Redis connection URL")
    REDIS_HOST: str = Field(default="localhost", description="Redis host")
    REDIS_PORT: int = Field(default=6379, description="Redis port")
    REDIS_PASSWORD: Optional[str] = Field(default=None, description="Redis password")
    STORE_CONNECT_RETRIES: int = Field(
        default=3,
        description="Connection attempts against the document store before giving up",
    )
    LOCK_DIR: str = Field(
        default_factory=tempfile.gettempdir,
        description="Directory holding per-store reprocessing lock markers",
    )

    # ============================================================================
    # LLM Service Configuration
    # ============================================================================

    OPENAI_API_KEY: Optional[str] = Field(default=None, description="OpenAI API key")
    OPENAI_DEFAULT_MODEL: str = Field(
        default="gpt-4o-mini",
        description="Model used for classification, description and translation",
    )
    OPENAI_MAX_TOKENS: int = Field(default=2000, description="Maximum completion tokens")
    EMBEDDING_MODEL: str = Field(default="text-embedding-3-large", description="Embedding model")
    EMBEDDING_MAX_TOKENS: int = Field(
        default=8000,
        description="Embedding input is truncated to this many tokens",
    )
    RETRY_ATTEMPTS: int = Field(
        default=3,
        description="Retries for rate-limited or network-failed LLM requests made directly through OpenAIService; "
                    "enrichment capabilities never retry",
    )

    # ============================================================================
    # Catalog Fetch Configuration
    # ============================================================================

    FETCH_RETRY_ATTEMPTS: int = Field(default=3, description="Catalog fetch attempt ceiling")
    FETCH_INITIAL_DELAY: float = Field(default=1.0, description="Catalog fetch backoff base in seconds")
    HTTP_TIMEOUT: int = Field(default=30, description="Catalog request timeout in seconds")
    SHOPIFY_API_VERSION: str = Field(default="2024-10", description="Shopify Admin API version")
    SHOPIFY_PAGE_SIZE: int = Field(default=50, description="Products per Shopify GraphQL page")
    WOO_PAGE_SIZE: int = Field(default=100, description="Products per WooCommerce REST page")

    # ============================================================================
    # Performance Configuration
    # ============================================================================

    INGEST_CONCURRENCY: int = Field(default=3, description="Worker pool width for catalog ingest")
    IMAGE_FETCH_CONCURRENCY: int = Field(default=3, description="Concurrent image downloads")
    IMAGE_FETCH_TIMEOUT: int = Field(default=15, description="Image download timeout in seconds")
    MAX_CLASSIFICATION_IMAGES: int = Field(default=3, description="Images sent per classification")
    SYNC_STATUS_MAX_LOGS: int = Field(
        default=500,
        description="Log lines retained in a sync status record (oldest dropped first)",
    )

    @field_validator("STORAGE_PROVIDER")
    @classmethod
    def validate_storage_provider(cls, v: str) -> str:
        v = v.lower()
        if v not in ("local", "redis"):
            raise ValueError(f"STORAGE_PROVIDER must be 'local' or 'redis', got '{v}'")
        return v

    @field_validator("INGEST_CONCURRENCY", "IMAGE_FETCH_CONCURRENCY", "STORE_CONNECT_RETRIES")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    # ============================================================================
    # Computed Properties
    # ============================================================================

    @property
    def redis_url(self) -> str:
        """Redis URL, explicit or assembled from host/port/password."""
        if self.REDIS_URL:
            return self.REDIS_URL
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"

    def get_llm_config(self) -> Dict[str, Any]:
        """OpenAI configuration used to build the AI capabilities."""
        return {
            "api_key": self.OPENAI_API_KEY,
            "default_model": self.OPENAI_DEFAULT_MODEL,
            "embedding_model": self.EMBEDDING_MODEL,
            "max_retries": 0,
        }


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings


def reload_settings() -> Settings:
    """
    Reload settings from the environment.

    Useful in tests or after the environment has been modified.
    """
    global settings
    settings = Settings()
    logger.info(f"Settings reloaded for environment: {settings.ENV}")
    return settings


def create_test_settings(**overrides) -> Settings:
    """
    Create settings for testing with specific overrides.

    Args:
        **overrides: Settings values to override

    Returns:
        Settings instance with the overrides applied
    """
    test_env = {
        "ENV": "test",
        "DEBUG": True,
        "OPENAI_API_KEY": None,
        "STORAGE_PROVIDER": "local",
        **overrides,
    }
    return Settings(**test_env)
