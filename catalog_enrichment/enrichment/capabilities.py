"""
AI capability interfaces.

The pipeline depends on three capabilities, each injected and each allowed
to be None ("capability unavailable"):

- Classifier: prompt (+ optional encoded images) -> AITextResult
- Describer:  prompt (+ optional image URLs) -> AITextResult
- Embedder:   text -> vector

Provider adapters absorb the provider's response envelope and return an
AITextResult, so nothing downstream inspects provider-specific shapes.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from catalog_enrichment.llm import LLMModelService, OpenAIService, LLMError

logger = logging.getLogger(__name__)


@dataclass
class AITextResult:
    """Normalized text payload of a generative call."""
    text: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: Any) -> "AITextResult":
        return cls(text="", error=str(error))


@dataclass
class EncodedImage:
    """Fetched image bytes, base64-encoded, ready for a vision request."""
    url: str
    mime_type: str
    data: str

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def extract_response_text(response: Any) -> Optional[str]:
    """
    Pull the text payload out of the response envelopes seen in practice.

    Handles plain strings, the standardized service dict ({"content": ...}),
    the OpenAI choices shape, candidate/parts envelopes (top-level or nested
    under "response") and objects exposing a `.text` attribute.
    """
    if response is None:
        return None
    if isinstance(response, str):
        return response

    if isinstance(response, dict):
        if isinstance(response.get("content"), str):
            return response["content"]
        if isinstance(response.get("text"), str):
            return response["text"]
        choices = response.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            if isinstance(message.get("content"), str):
                return message["content"]
        candidates = response.get("candidates")
        if candidates is None and isinstance(response.get("response"), dict):
            candidates = response["response"].get("candidates")
        if candidates:
            parts = (candidates[0].get("content") or {}).get("parts") or []
            if parts and isinstance(parts[0].get("text"), str):
                return parts[0]["text"]
        return None

    text = getattr(response, "text", None)
    if isinstance(text, str):
        return text
    return None


class Classifier(ABC):
    """Generative call used for constrained classification."""

    @abstractmethod
    async def complete(self, prompt: str, images: Sequence[EncodedImage] = ()) -> AITextResult:
        pass


class Describer(ABC):
    """Generative call used for descriptions, summaries and translation."""

    @abstractmethod
    async def describe(self, prompt: str, image_urls: Sequence[str] = ()) -> AITextResult:
        pass


class Embedder(ABC):
    """Text embedding call. May raise; EmbeddingClient absorbs failures."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        pass


class OpenAICapabilities(Classifier, Describer, Embedder):
    """All three capabilities backed by one LLMModelService."""

    def __init__(self, service: LLMModelService, model: str = None):
        self.service = service
        self.model = model

    async def _chat(self, content: Any) -> AITextResult:
        try:
            response = await self.service.chat_completion(
                messages=[{"role": "user", "content": content}],
                model=self.model,
            )
        except LLMError as e:
            logger.warning(f"⚠️ {self.service.provider_name} completion failed: {e}")
            return AITextResult.failure(e)

        text = extract_response_text(response)
        if text is None:
            return AITextResult.failure("response carried no text payload")
        return AITextResult(text=text)

    async def complete(self, prompt: str, images: Sequence[EncodedImage] = ()) -> AITextResult:
        if not images:
            return await self._chat(prompt)
        content = [{"type": "text", "text": prompt}]
        content.extend({"type": "image_url", "image_url": {"url": image.data_url()}} for image in images)
        return await self._chat(content)

    async def describe(self, prompt: str, image_urls: Sequence[str] = ()) -> AITextResult:
        if not image_urls:
            return await self._chat(prompt)
        content = [{"type": "text", "text": prompt}]
        content.extend({"type": "image_url", "image_url": {"url": url}} for url in image_urls)
        return await self._chat(content)

    async def embed(self, text: str) -> List[float]:
        return await self.service.create_embedding(text)


@dataclass
class Capabilities:
    """Injected capability bundle; any member may be None."""
    classifier: Optional[Classifier] = None
    describer: Optional[Describer] = None
    embedder: Optional[Embedder] = None

    @property
    def available(self) -> List[str]:
        return [name for name in ("classifier", "describer", "embedder") if getattr(self, name) is not None]


def build_capabilities(settings) -> Capabilities:
    """Wire the OpenAI-backed capabilities, or none when no API key is configured."""
    if not settings.OPENAI_API_KEY:
        logger.warning("⚠️ OPENAI_API_KEY not set - classification, description and embeddings disabled")
        return Capabilities()

    # Classification, description and embedding calls are made once; a failure degrades the product
    service = OpenAIService(**settings.get_llm_config())
    adapter = OpenAICapabilities(service)
    return Capabilities(classifier=adapter, describer=adapter, embedder=adapter)
