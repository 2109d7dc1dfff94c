"""
Cart-related exceptions.
"""

from datetime import datetime

from .base import PosSyncException


class CartException(PosSyncException):
    """Base exception for cart session errors."""
    pass


class ExpiredStateException(CartException):
    """
    Cart session is older than the retention window.

    Treated as absence by the store, never raised to the UI.
    """

    def __init__(self, session_id: str, last_updated: datetime, expiry_days: int):
        super().__init__(
            f"Cart session {session_id} expired (last updated {last_updated.isoformat()}, "
            f"retention {expiry_days} days)",
            details={'session_id': session_id, 'expiry_days': expiry_days}
        )
        self.session_id = session_id
        self.last_updated = last_updated
        self.expiry_days = expiry_days


class MalformedImportException(CartException):
    """Raised when an imported cart document fails shape validation."""

    def __init__(self, reason: str):
        super().__init__(
            f"Cart import rejected: {reason}",
            details={'reason': reason}
        )
        self.reason = reason
