from enum import Enum


class CacheEntryState(str, Enum):
    MISS = "MISS"                          # Nothing cached for the path yet
    FETCHING = "FETCHING"                  # Network request in flight
    FRESH = "FRESH"                        # Cached and younger than the class TTL
    STALE = "STALE"                        # Cached but older than the class TTL
    OFFLINE_FALLBACK = "OFFLINE_FALLBACK"  # Network failed, served whatever was cached
