"""Core exceptions for the proxy."""

from typing import Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class ModelNotFoundError(ProxyError):
    """Raised when a requested model is not found in the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class UpstreamHTTPError(ProxyError):
    """Raised when the upstream provider answers with an error status.

    The body text is kept verbatim so it can be surfaced to the caller as a
    single non-streamed error payload. Nothing retries on this error.
    """

    def __init__(
        self,
        provider: str,
        status_code: int,
        body: str,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(f"{provider} API error: {body}")
        self.provider = provider
        self.status_code = status_code
        self.body = body
        self.url = url
