"""
Offline queue exceptions.
"""

from .base import PosSyncException


class QueueException(PosSyncException):
    """Base exception for offline mutation queue errors."""
    pass


class ReplayFailedException(QueueException):
    """Raised when the server rejects a replayed mutation."""

    def __init__(self, item_id: str, action: str, reason: str, status: int | None = None):
        super().__init__(
            f"Replay of {action} ({item_id}) failed: {reason}",
            details={'item_id': item_id, 'action': action, 'status': status}
        )
        self.item_id = item_id
        self.action = action
        self.reason = reason
        self.status = status


class QueueExhaustedException(QueueException):
    """
    A queue item reached the retry limit and was dropped.

    Built for log context only; the drain routine never raises it.
    """

    def __init__(self, item_id: str, action: str, retry_count: int):
        super().__init__(
            f"Dropped {action} ({item_id}) after {retry_count} failed attempts",
            details={'item_id': item_id, 'action': action, 'retry_count': retry_count}
        )
        self.item_id = item_id
        self.action = action
        self.retry_count = retry_count
