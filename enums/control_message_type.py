from enum import Enum


class ControlMessageType(str, Enum):
    """
    Messages understood by the cache worker.

    GET_CACHE_STATUS and CLEAR_CACHE reply with a payload, PREFETCH_DATA and
    SKIP_WAITING are fire-and-forget. FETCH carries an intercepted request.
    """

    GET_CACHE_STATUS = "GET_CACHE_STATUS"
    CLEAR_CACHE = "CLEAR_CACHE"
    PREFETCH_DATA = "PREFETCH_DATA"
    SKIP_WAITING = "SKIP_WAITING"
    FETCH = "FETCH"

    @property
    def expects_reply(self) -> bool:
        return self in (
            ControlMessageType.GET_CACHE_STATUS,
            ControlMessageType.CLEAR_CACHE,
            ControlMessageType.FETCH,
        )
