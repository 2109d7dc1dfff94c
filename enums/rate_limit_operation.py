from enum import Enum


class RateLimitOperation(str, Enum):
    """
    Rate limit operation types.

    Each operation has its own independent sliding-window counter.
    """

    TEST_CONNECTION = "test_connection"
    """
    Rate limit for backend connection probes.
    Config: RATE_LIMIT_TEST_CONNECTION_PER_MINUTE
    Default: 10 probes per minute
    """

    FETCH_ITEMS = "fetch_items"
    """
    Rate limit for product catalog fetches.
    Config: RATE_LIMIT_FETCH_ITEMS_PER_MINUTE
    Default: 30 fetches per minute
    """
