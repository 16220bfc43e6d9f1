"""
Base LLM Service Interface

Provides the standardized interface for AI providers with:
- chat_completion and create_embedding methods
- Error handling with exponential backoff
- Token counting and text truncation
"""

import asyncio
import logging
import tiktoken
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional

from .errors import LLMError, RateLimitError, NetworkError

logger = logging.getLogger(__name__)


class LLMModelService(ABC):
    """
    Base class for AI service providers.

    Subclasses translate provider SDK errors into the LLMError hierarchy so
    that retry_with_backoff can decide what is worth another attempt.
    """

    def __init__(self, provider_name: str, default_model: str = None):
        self.provider_name = provider_name
        self.default_model = default_model

    @abstractmethod
    async def chat_completion(self, system: str = None, messages: List[Dict[str, Any]] = None,
                              model: str = None, **kwargs) -> Dict[str, Any]:
        """
        Standard chat completion interface.

        Returns:
            Dict containing response with standardized keys:
            - content: Response text
            - usage: Token usage information
            - model: Model used
            - finish_reason: Completion reason

        Raises:
            LLMError: For any LLM service errors
        """
        pass

    @abstractmethod
    async def create_embedding(self, text: str, model: str = None) -> List[float]:
        """Return the embedding vector for `text`."""
        pass

    @staticmethod
    def _encoding_for(model: str):
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            # cl100k_base covers the GPT-4 family and the text-embedding-3 models
            return tiktoken.get_encoding("cl100k_base")

    @classmethod
    def truncate_text(cls, text: str, max_tokens: int, model: str = "gpt-4o-mini") -> str:
        """Cut `text` down to at most `max_tokens` tokens."""
        try:
            encoding = cls._encoding_for(model)
            tokens = encoding.encode(text)
            if len(tokens) <= max_tokens:
                return text
            logger.info(f"Truncating text from {len(tokens)} to {max_tokens} tokens")
            return encoding.decode(tokens[:max_tokens])
        except Exception as e:
            logger.warning(f"Token truncation failed for model {model}: {e}")
            return text[: max_tokens * 4]

    async def retry_with_backoff(self, operation, max_retries: int = 3,
                                 base_delay: float = 1.0) -> Any:
        """
        Execute operation with exponential backoff retry logic.

        Only rate-limit and network errors are retried; every other LLMError
        propagates on the first occurrence.

        Args:
            operation: Async operation to retry
            max_retries: Maximum number of retry attempts
            base_delay: Base delay in seconds (doubled each attempt)
        """
        last_error: Optional[LLMError] = None

        for attempt in range(max_retries + 1):
            try:
                return await operation()
            except RateLimitError as e:
                last_error = e
                if attempt >= max_retries:
                    break
                delay = e.retry_after or (base_delay * (2 ** attempt))
                logger.warning(f"Rate limited, retrying in {delay}s (attempt {attempt + 1}/{max_retries + 1})")
                await asyncio.sleep(delay)
            except NetworkError as e:
                last_error = e
                if attempt >= max_retries:
                    break
                delay = base_delay * (2 ** attempt)
                logger.warning(f"Network error, retrying in {delay}s (attempt {attempt + 1}/{max_retries + 1})")
                await asyncio.sleep(delay)

        raise last_error or LLMError(f"Operation failed after {max_retries + 1} attempts")
