from datetime import timedelta
from enum import Enum

import config


class CacheClass(str, Enum):
    """
    Freshness classes for intercepted GET traffic.

    Each class carries its own TTL and network timeout. The class of a request
    is chosen from substrings of its path, products being the default bucket.
    """

    PRODUCTS = "products"
    EMPLOYEES = "employees"
    STATIC = "static"

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds={
            CacheClass.PRODUCTS: config.CACHE_TTL_PRODUCTS_SECONDS,
            CacheClass.EMPLOYEES: config.CACHE_TTL_EMPLOYEES_SECONDS,
            CacheClass.STATIC: config.CACHE_TTL_STATIC_SECONDS,
        }[self])

    @property
    def timeout_seconds(self) -> float:
        return {
            CacheClass.PRODUCTS: config.FETCH_TIMEOUT_PRODUCTS_SECONDS,
            CacheClass.EMPLOYEES: config.FETCH_TIMEOUT_EMPLOYEES_SECONDS,
            CacheClass.STATIC: config.FETCH_TIMEOUT_STATIC_SECONDS,
        }[self]


class CacheBucket(str, Enum):
    """Physical cache partitions reported by GET_CACHE_STATUS."""

    API = "api"
    STATIC = "static"
    MAIN = "main"
