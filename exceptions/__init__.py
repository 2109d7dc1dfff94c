"""
Custom exceptions for the offline sync engine.

Exception Hierarchy:
--------------------
PosSyncException (base)
├── StorageException
│   └── StorageUnavailableException
├── CartException
│   ├── ExpiredStateException
│   └── MalformedImportException
├── NetworkException
│   ├── NetworkFailureException
│   └── RateLimitExceededException
└── QueueException
    ├── ReplayFailedException
    └── QueueExhaustedException

Usage:
------
Backends and clients raise specific exceptions:
    raise StorageUnavailableException("sqlite", "get", str(e))

Services resolve them internally and degrade:
    try:
        raw = await self.storage.get(key)
    except StorageUnavailableException as e:
        self.storage.report_unavailable(e)
        return None
"""

from .base import PosSyncException
from .storage import StorageException, StorageUnavailableException
from .cart import CartException, ExpiredStateException, MalformedImportException
from .network import NetworkException, NetworkFailureException, RateLimitExceededException
from .queue import QueueException, ReplayFailedException, QueueExhaustedException

__all__ = [
    # Base
    'PosSyncException',

    # Storage
    'StorageException',
    'StorageUnavailableException',

    # Cart
    'CartException',
    'ExpiredStateException',
    'MalformedImportException',

    # Network
    'NetworkException',
    'NetworkFailureException',
    'RateLimitExceededException',

    # Queue
    'QueueException',
    'ReplayFailedException',
    'QueueExhaustedException',
]
