from .capabilities import (
    AITextResult,
    Capabilities,
    Classifier,
    Describer,
    Embedder,
    EncodedImage,
    OpenAICapabilities,
    build_capabilities,
    extract_response_text,
)
from .classification_client import ClassificationClient
from .description_enricher import DescriptionEnricher, get_product_description
from .embedding_client import EmbeddingClient
from .image_fetcher import ImageFetcher

__all__ = [
    "AITextResult",
    "Capabilities",
    "Classifier",
    "Describer",
    "Embedder",
    "EncodedImage",
    "OpenAICapabilities",
    "build_capabilities",
    "extract_response_text",
    "ClassificationClient",
    "DescriptionEnricher",
    "get_product_description",
    "EmbeddingClient",
    "ImageFetcher",
]
