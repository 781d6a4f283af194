"""
Error taxonomy for the Legal Search pipeline.

Indexing-time errors are handled per chunk and never escape the indexer.
Query-time errors propagate to the caller as one of these types.
"""

from typing import Optional


class LegalSearchError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(LegalSearchError):
    """An embedding or LLM provider call failed."""

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class RateLimited(ProviderError):
    """The provider rejected the call because of rate limiting (HTTP 429)."""


class DimensionMismatch(LegalSearchError, ValueError):
    """Two vectors of different dimension were compared or stored."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class EmptyCorpus(LegalSearchError):
    """No embeddings exist for the requested scope. Informational, not fatal."""


class MalformedQuery(LegalSearchError, ValueError):
    """The query was rejected before any provider call."""


class OperationCancelled(LegalSearchError):
    """The caller's cancel signal was observed between units of work."""


def is_rate_limit_error(exc: BaseException) -> bool:
    """
    Detect rate limiting across provider SDKs.

    openai and voyageai expose a ``status_code``/``http_status`` of 429;
    cohere raises ``TooManyRequestsError``.
    """
    if isinstance(exc, RateLimited):
        return True
    for attr in ("status_code", "http_status", "code"):
        if getattr(exc, attr, None) == 429:
            return True
    name = type(exc).__name__
    return "RateLimit" in name or "TooManyRequests" in name
