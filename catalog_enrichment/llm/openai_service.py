"""
OpenAI Service Implementation

OpenAI chat completion (text and vision) and embedding integration following
the LLMModelService interface.
"""

import logging
from typing import List, Dict, Any, Optional

import openai
from openai import AsyncOpenAI

from .base import LLMModelService
from .errors import (
    LLMError, RateLimitError, TokenLimitError,
    AuthenticationError, NetworkError, InvalidRequestError, ServiceUnavailableError
)
from configs import get_settings

logger = logging.getLogger(__name__)


class OpenAIService(LLMModelService):
    """
    OpenAI service implementation.

    Chat models handle classification, metadata summarization, translation and
    image description; the embedding model produces product vectors.
    """

    def __init__(self, api_key: str = None, default_model: str = None,
                 embedding_model: str = None, max_retries: int = None):
        settings = get_settings()
        super().__init__(provider_name="openai", default_model=default_model or settings.OPENAI_DEFAULT_MODEL)

        self.api_key = api_key or settings.OPENAI_API_KEY
        if not self.api_key:
            raise AuthenticationError("OpenAI API key not provided in settings or environment", provider="openai")

        self.embedding_model = embedding_model or settings.EMBEDDING_MODEL
        self.max_tokens = settings.OPENAI_MAX_TOKENS
        self.embedding_max_tokens = settings.EMBEDDING_MAX_TOKENS
        self.max_retries = settings.RETRY_ATTEMPTS if max_retries is None else max_retries

        self.client = AsyncOpenAI(api_key=self.api_key, max_retries=0)
        logger.info(f"OpenAI service initialized with default model: {self.default_model}")

    async def chat_completion(self, system: str = None, messages: List[Dict[str, Any]] = None,
                              model: str = None, **kwargs) -> Dict[str, Any]:
        """
        OpenAI chat completion.

        Message content may be a plain string or a list of content parts
        (text and image_url) for vision requests.
        """
        model_name = model or self.default_model
        if model_name.startswith("openai/"):
            model_name = model_name[len("openai/"):]

        request_params = {
            "model": model_name,
            "messages": self._prepare_messages(system, messages),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
            "temperature": kwargs.get("temperature", 0.2),
        }
        if kwargs.get("response_format"):
            request_params["response_format"] = kwargs["response_format"]

        async def make_request():
            return await self._call(self.client.chat.completions.create, **request_params)

        response = await self.retry_with_backoff(make_request, max_retries=self.max_retries)
        return self._format_openai_response(response, model_name)

    async def create_embedding(self, text: str, model: str = None) -> List[float]:
        model_name = model or self.embedding_model
        text = self.truncate_text(text, self.embedding_max_tokens, model_name)

        async def make_request():
            return await self._call(self.client.embeddings.create, model=model_name, input=text)

        response = await self.retry_with_backoff(make_request, max_retries=self.max_retries)
        try:
            return list(response.data[0].embedding)
        except (AttributeError, IndexError) as e:
            raise LLMError(f"Invalid embedding response from OpenAI: {e}", original_error=e, provider="openai")

    async def _call(self, method, **request_params) -> Any:
        """
        Make the actual OpenAI API request, mapping SDK errors.

        Raises:
            Various LLMError subclasses based on the error type
        """
        try:
            return await method(**request_params)

        except openai.RateLimitError as e:
            retry_after = None
            if getattr(e, "response", None) is not None:
                header = e.response.headers.get("retry-after")
                if header and header.isdigit():
                    retry_after = int(header)
            raise RateLimitError(f"OpenAI rate limit exceeded: {e}", retry_after=retry_after,
                                 original_error=e, provider="openai")

        except openai.AuthenticationError as e:
            raise AuthenticationError(f"OpenAI authentication failed: {e}", original_error=e, provider="openai")

        except openai.BadRequestError as e:
            error_message = str(e).lower()
            if "token" in error_message and ("limit" in error_message or "maximum" in error_message):
                raise TokenLimitError(f"OpenAI token limit exceeded: {e}", original_error=e, provider="openai")
            raise InvalidRequestError(f"OpenAI request invalid: {e}", original_error=e, provider="openai")

        except (openai.APIConnectionError, openai.APITimeoutError) as e:
            raise NetworkError(f"OpenAI network error: {e}", original_error=e, provider="openai")

        except openai.InternalServerError as e:
            raise ServiceUnavailableError(f"OpenAI service unavailable: {e}", original_error=e, provider="openai")

        except openai.OpenAIError as e:
            raise LLMError(f"Unexpected OpenAI error: {e}", original_error=e, provider="openai")

    @staticmethod
    def _prepare_messages(system: str = None, messages: List[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        formatted_messages = []
        if system:
            formatted_messages.append({"role": "system", "content": system})
        for message in messages or []:
            if "role" not in message or "content" not in message:
                raise InvalidRequestError("Each message needs 'role' and 'content'", provider="openai")
            formatted_messages.append({"role": message["role"], "content": message["content"]})
        return formatted_messages

    @staticmethod
    def _format_openai_response(response: Any, model: str) -> Dict[str, Any]:
        """Format an OpenAI response into the standardized dictionary."""
        try:
            choice = response.choices[0]
            message = choice.message
            usage: Optional[Dict[str, int]] = None
            if getattr(response, "usage", None) is not None:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }
            return {
                "content": message.content,
                "usage": usage,
                "model": model,
                "finish_reason": choice.finish_reason,
                "provider": "openai",
                # Raw choices structure kept for callers reading the OpenAI shape
                "choices": [{"message": {"content": message.content, "role": message.role}}],
            }
        except (AttributeError, IndexError, KeyError) as e:
            logger.error(f"Failed to format OpenAI response: {e}")
            raise LLMError(f"Invalid response format from OpenAI: {e}", original_error=e, provider="openai")
