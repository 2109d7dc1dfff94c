"""
Network-related exceptions.
"""

from .base import PosSyncException


class NetworkException(PosSyncException):
    """Base exception for remote API errors."""
    pass


class NetworkFailureException(NetworkException):
    """Raised when a request times out, is aborted or cannot reach the server."""

    def __init__(self, method: str, url: str, reason: str):
        super().__init__(
            f"{method} {url} failed: {reason}",
            details={'method': method, 'url': url, 'reason': reason}
        )
        self.method = method
        self.url = url
        self.reason = reason


class RateLimitExceededException(NetworkException):
    """Raised when a local rate limit blocks an outgoing request."""

    def __init__(self, operation: str, max_count: int, window_seconds: int):
        super().__init__(
            f"Rate limit exceeded for {operation}: {max_count} per {window_seconds}s",
            details={'operation': operation, 'max_count': max_count, 'window_seconds': window_seconds}
        )
        self.operation = operation
        self.max_count = max_count
        self.window_seconds = window_seconds
