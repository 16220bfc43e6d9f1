"""
LLM Service Error Classes

Error handling for AI provider operations: rate limiting, token limits,
authentication, invalid requests and network issues.
"""


class LLMError(Exception):
    """Base exception for all LLM service errors"""

    def __init__(self, message: str, original_error: Exception = None, provider: str = None):
        super().__init__(message)
        self.original_error = original_error
        self.provider = provider
        self.message = message

    def __str__(self):
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class RateLimitError(LLMError):
    """Raised when API rate limits are exceeded"""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: int = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class TokenLimitError(LLMError):
    """Raised when the request exceeds the model's token limits"""
    pass


class AuthenticationError(LLMError):
    """Raised when API authentication fails"""
    pass


class NetworkError(LLMError):
    """Raised when network operations fail"""

    def __init__(self, message: str = "Network error", status_code: int = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class InvalidRequestError(LLMError):
    """Raised when the request is invalid or malformed"""
    pass


class ServiceUnavailableError(LLMError):
    """Raised when the provider is temporarily unavailable"""
    pass
