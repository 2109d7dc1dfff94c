from enum import Enum


class StorageBackend(str, Enum):
    SQLITE = "sqlite"
    REDIS = "redis"
    MEMORY = "memory"
