"""
Models Package

Importing this package registers the SQLAlchemy tables and exposes the
pydantic documents persisted by the sync engine.
"""

from models.base import Base, CamelDTO
from models.kv_record import KeyValueRecord
from models.product import ProductDTO, ApiItemDTO
from models.cart import CartItemDTO, CartStateDTO, CartMetadataDTO, HistoryEntryDTO, CartSnapshotDTO
from models.offline_queue import OfflineQueueItemDTO, DrainResultDTO
from models.cache_entry import CacheEntryDTO
from models.offline_data import OfflineDataDTO

__all__ = [
    'Base',
    'CamelDTO',
    'KeyValueRecord',
    'ProductDTO',
    'ApiItemDTO',
    'CartItemDTO',
    'CartStateDTO',
    'CartMetadataDTO',
    'HistoryEntryDTO',
    'CartSnapshotDTO',
    'OfflineQueueItemDTO',
    'DrainResultDTO',
    'CacheEntryDTO',
    'OfflineDataDTO',
]
