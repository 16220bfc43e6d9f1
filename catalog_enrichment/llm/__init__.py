"""
AI provider services.

`OpenAIService` backs every AI capability of the pipeline; the error classes
let callers tell retryable failures apart from permanent ones.
"""

from .base import LLMModelService
from .openai_service import OpenAIService
from .errors import (
    LLMError,
    RateLimitError,
    TokenLimitError,
    AuthenticationError,
    NetworkError,
    InvalidRequestError,
    ServiceUnavailableError,
)

__all__ = [
    "LLMModelService",
    "OpenAIService",
    "LLMError",
    "RateLimitError",
    "TokenLimitError",
    "AuthenticationError",
    "NetworkError",
    "InvalidRequestError",
    "ServiceUnavailableError",
]
