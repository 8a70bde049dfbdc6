"""Error taxonomy shared by every layer of the pipeline."""
from __future__ import annotations


class NewsDigestError(Exception):
    """Base class for all pipeline errors."""

    kind = "NewsDigestError"


class ConfigError(NewsDigestError):
    """Invalid tunables. Fatal, never retried."""

    kind = "ConfigError"


class FetchError(NewsDigestError):
    """The source page could not be fetched."""

    kind = "FetchError"

    def __init__(self, message: str, *, status: int | None = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class ProviderError(NewsDigestError):
    """An embedding or chat provider failed."""

    kind = "ProviderError"
    retryable = False


class RateLimited(ProviderError):
    kind = "RateLimited"
    retryable = True


class Unauthorized(ProviderError):
    kind = "Unauthorized"


class Unavailable(ProviderError):
    """Provider down, unreachable or timed out."""

    kind = "Unavailable"
    retryable = True


class EmptyInputError(NewsDigestError):
    """Nothing to index; extraction most likely selected nothing."""

    kind = "EmptyInputError"


class ContextTooLargeError(NewsDigestError):
    """Evidence does not fit the summarizer's input. Lower k or re-chunk smaller."""

    kind = "ContextTooLargeError"


class DimensionMismatchError(NewsDigestError):
    kind = "DimensionMismatchError"


class PersistError(NewsDigestError):
    kind = "PersistError"


class RunCancelledError(NewsDigestError):
    kind = "RunCancelled"


def is_retryable(exc: BaseException) -> bool:
    """Return True for errors the owning component should retry with backoff."""
    if isinstance(exc, FetchError):
        return exc.retryable
    if isinstance(exc, ProviderError):
        return exc.retryable
    return False


__all__ = [
    "NewsDigestError",
    "ConfigError",
    "FetchError",
    "ProviderError",
    "RateLimited",
    "Unauthorized",
    "Unavailable",
    "EmptyInputError",
    "ContextTooLargeError",
    "DimensionMismatchError",
    "PersistError",
    "RunCancelledError",
    "is_retryable",
]
