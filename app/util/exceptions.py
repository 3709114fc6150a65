"""
Provider error types and standard error logging for the manga metadata service.

Adapters raise the typed errors below; the request orchestrator catches them
at its boundary and turns them into error envelopes. The logging helpers keep
the shape of error records consistent across adapters.
"""
from typing import Any

from pydantic import ValidationError

from app.util.log import logger


class ProviderError(Exception):
    """Base class for every failure an adapter can report."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class FetchError(ProviderError):
    """Upstream unreachable, timed out, or answered with a non-2xx status."""

    def __init__(
        self, message: str, provider: str | None = None, status: int | None = None
    ):
        super().__init__(message, provider)
        self.status = status


class ParseError(ProviderError):
    """Upstream answered, but its markup or schema no longer matches any known pattern."""


class RateLimitError(ProviderError):
    """Upstream answered successfully with a body we cannot use, most likely throttling."""


class UnsupportedProviderError(ProviderError):
    def __init__(self, provider: str):
        super().__init__(f"Provider '{provider}' is not supported", provider)


class UnsupportedOperationError(ProviderError):
    def __init__(self, operation: str, provider: str | None = None):
        super().__init__(
            f"Operation '{operation}' is not available for provider '{provider}'",
            provider,
        )
        self.operation = operation


def handle_external_api_error(
    error: Exception,
    service: str,
    operation: str,
    **context: Any
) -> None:
    """
    Standard logging for external API failures.

    Args:
        error: The caught exception
        service: Name of the upstream provider (e.g., "MangaDex", "MangaPill")
        operation: What operation was being attempted (e.g., "search", "read")
        **context: Additional context to log (e.g., query=..., chapter_id=...)

    Example:
        try:
            pages = await provider.get_pages(client_session, chapter_id)
        except ProviderError as e:
            handle_external_api_error(e, provider.name, "read", chapter_id=chapter_id)
            raise
    """
    logger.error(
        f"{service} {operation} failed",
        error=str(error),
        error_type=type(error).__name__,
        service=service,
        operation=operation,
        **context
    )


def handle_validation_error(
    error: ValidationError,
    data_source: str,
    **context: Any
) -> None:
    """
    Standard logging for data validation failures.

    Args:
        error: The caught ValidationError
        data_source: Where the invalid data came from (e.g., "MangaDex search response")
        **context: Additional context to log
    """
    logger.error(
        f"{data_source} validation failed",
        error=str(error),
        error_type=type(error).__name__,
        data_source=data_source,
        **context
    )
