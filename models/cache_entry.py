from datetime import datetime

from pydantic import Field

from enums.cache_class import CacheClass
from models.base import CamelDTO


class CacheMetadataDTO(CamelDTO):
    cached_at: datetime
    cache_class: CacheClass = Field(alias="class")
    url: str = ""
    status: int = 200


class CacheEntryDTO(CamelDTO):
    """Cached GET response keyed by canonical request path."""
    path: str
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    metadata: CacheMetadataDTO
