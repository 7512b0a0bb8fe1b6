"""Error taxonomy shared by ingestion, retrieval and generation.

The hierarchy lets callers tell apart three situations:

* the caller's own input was invalid (:class:`InvalidInputError`),
* a service we depend on failed (:class:`ProviderError`,
  :class:`WriteError`, :class:`RetrievalError` subclasses),
* the process is misconfigured (:class:`ConfigurationError`).

Soft failures (empty retrieval, unparseable model output, inconclusive
write verification) never raise; they degrade to fallback values.
"""

from __future__ import annotations

import asyncio


class DocSearchError(Exception):
    """Base class for every error raised by :mod:`deepsearch_rag`."""


class InvalidInputError(DocSearchError, ValueError):
    """Empty or malformed caller input.  Never retried."""


class ConfigurationError(DocSearchError):
    """Process-level misconfiguration (missing keys, wrong dimension, …)."""


class ProviderError(DocSearchError):
    """Embedding or generation call failed or returned malformed data."""


class DimensionMismatchError(ProviderError, ConfigurationError):
    """A vector does not have the configured dimension ``D``."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Expected embedding dimension {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class WriteError(DocSearchError):
    """Index write failed after exhausting the retry budget."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RetrievalError(DocSearchError):
    """Base class for classified vector-index failures."""


class OperationTimeoutError(RetrievalError, TimeoutError):
    """An external call exceeded its timeout."""


class AuthError(RetrievalError):
    """The index rejected our credentials."""


class IndexUnavailableError(RetrievalError):
    """The index could not be reached or reported a server-side failure."""


class QueryError(RetrievalError):
    """The index rejected the request itself."""


_AUTH_STATUSES = {401, 403}
_TIMEOUT_STATUSES = {408, 504}


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status", "status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_index_error(exc: BaseException, operation: str = "query") -> RetrievalError:
    """Map a raw backend exception onto the retrieval error taxonomy.

    Already-classified errors are returned unchanged.  The returned
    error is *not* raised; callers chain it with ``raise ... from exc``.
    """
    if isinstance(exc, RetrievalError):
        return exc

    message = f"Vector index {operation} failed: {type(exc).__name__}: {exc}"
    status = _status_of(exc)
    name = type(exc).__name__.lower()

    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)) or "timeout" in name:
        return OperationTimeoutError(message)
    if status in _TIMEOUT_STATUSES:
        return OperationTimeoutError(message)
    if isinstance(exc, PermissionError) or status in _AUTH_STATUSES or "auth" in name:
        return AuthError(message)
    if isinstance(exc, ConnectionError) or "connect" in name or "unavailable" in name:
        return IndexUnavailableError(message)
    if status is not None and (status >= 500 or status == 429):
        return IndexUnavailableError(message)
    return QueryError(message)


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` for index errors worth retrying (timeouts, outages)."""
    classified = classify_index_error(exc, "write")
    return isinstance(classified, (OperationTimeoutError, IndexUnavailableError))
