"""
Storage-related exceptions.
"""

from .base import PosSyncException


class StorageException(PosSyncException):
    """Base exception for persistence medium errors."""
    pass


class StorageUnavailableException(StorageException):
    """Raised by a storage backend when the medium cannot be read or written."""

    def __init__(self, backend: str, operation: str, reason: str):
        super().__init__(
            f"Storage backend '{backend}' unavailable during {operation}: {reason}",
            details={'backend': backend, 'operation': operation, 'reason': reason}
        )
        self.backend = backend
        self.operation = operation
        self.reason = reason
