"""Exceptions raised by the offline sync core.

Only business failures (``ApiError`` and the client-side guards below) are
meant to reach callers of the apply layer.  ``ConnectivityError`` is caught
inside the core and turned into a queued action or a cache read.
"""

from __future__ import annotations

from typing import Any


class StockflowError(Exception):
    """Base exception for all stockflow errors."""

    pass


class ConnectivityError(StockflowError):
    """Raised when the remote API cannot be reached (network error or timeout)."""

    def __init__(self, url: str, cause: Exception | None = None):
        self.url = url
        self.cause = cause
        message = f"Remote API unreachable at {url}"
        if cause:
            message += f": {cause}"
        super().__init__(message)


class ApiError(StockflowError):
    """Raised when the remote API answers with an error status."""

    def __init__(self, status_code: int, message: str, detail: Any = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {message}")


class NotFoundError(ApiError):
    """The requested entity does not exist (remotely or in the local cache)."""

    def __init__(self, message: str = "Resource not found", detail: Any = None):
        super().__init__(404, message, detail)


class ConflictError(ApiError):
    """The remote API rejected the mutation because of conflicting state."""

    def __init__(self, message: str = "Conflict", detail: Any = None):
        super().__init__(409, message, detail)


class ServerError(ApiError):
    """The remote API failed with a 5xx status."""

    pass


class InvalidResponseError(ApiError):
    """A 2xx response whose body is not valid JSON."""

    pass


class InsufficientStockError(StockflowError):

    """An outgoing movement or transfer exceeds the available quantity."""

    def __init__(self, message: str, available: int | None = None):
        self.available = available
        super().__init__(message)


class QueueFullError(StockflowError):
    """The offline queue reached ``Settings.queue_max_size``."""

    def __init__(self, max_size: int):
        self.max_size = max_size
        super().__init__(f"Offline queue is full ({max_size} pending actions); sync before making more changes")


__all__ = [
    "StockflowError",
    "ConnectivityError",
    "ApiError",
    "NotFoundError",
    "ConflictError",
    "ServerError",
    "InvalidResponseError",
    "InsufficientStockError",
    "QueueFullError",
]
