"""
Embedding Client

A product without an embedding is a valid state (left out of vector search,
kept in the catalog), so every failure here yields None instead of raising.
"""

import logging
from typing import List, Optional

from catalog_enrichment.enrichment.capabilities import Embedder

logger = logging.getLogger(__name__)


class EmbeddingClient:

    def __init__(self, embedder: Optional[Embedder], dimension: Optional[int] = None):
        self.embedder = embedder
        self.dimension = dimension

    async def embed(self, text: Optional[str]) -> Optional[List[float]]:
        if self.embedder is None:
            logger.debug("Embedder unavailable - skipping embedding")
            return None
        if not text or not text.strip():
            logger.warning("⚠️ Empty text, skipping embedding")
            return None

        try:
            vector = await self.embedder.embed(text)
        except Exception as e:
            logger.error(f"❌ Error generating embedding: {e}")
            return None

        if not vector:
            logger.warning("⚠️ Embedding call returned an empty vector")
            return None
        if self.dimension is not None and len(vector) != self.dimension:
            logger.error(f"❌ Embedding has {len(vector)} dimensions, expected {self.dimension}")
            return None
        return [float(v) for v in vector]
