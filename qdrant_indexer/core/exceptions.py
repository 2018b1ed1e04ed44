"""
Exceptions
==========
Error taxonomy shared by the indexer, the HTTP clients and the query engine.

Clients raise these internally and convert them to False / None at their
public boundary, so only ConfigurationError normally reaches callers.
"""

from typing import Optional


class IndexerError(Exception):
    """Base class for all errors raised by qdrant_indexer."""


class ConfigurationError(IndexerError, ValueError):
    """A required setting is missing or invalid."""


class TransportError(IndexerError):
    """Network failure, timeout or non-2xx response from a remote service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(TransportError):
    """The embedding provider asked us to slow down."""

    def __init__(self, message: str, retry_after: float = 10.0,
                 status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class SerializationError(TransportError):
    """A request body could not be encoded as JSON."""
