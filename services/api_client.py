import asyncio
import logging
from datetime import datetime

import aiohttp

import config
from enums.queue_action_type import QueueActionType
from enums.rate_limit_operation import RateLimitOperation
from exceptions.network import NetworkFailureException, RateLimitExceededException
from exceptions.queue import ReplayFailedException
from middleware.rate_limit import RateLimiter
from models.base import utcnow
from models.cart import CartItemDTO
from models.http import HttpResponseDTO
from models.offline_queue import OfflineQueueItemDTO

logger = logging.getLogger(__name__)

CHECKOUT_PATH = "/api/items/checkout"
CART_ITEMS_PATH = "/api/cart/items"


def build_checkout_payload(items: list[CartItemDTO], notes: str | None = None,
                           checkout_by: str = config.CHECKOUT_BY, now: datetime | None = None) -> dict:
    return {
        "items": [
            {"item_no": item.id, "quantity": item.quantity, "item_name": item.product_snapshot.name}
            for item in items
        ],
        "checkout_by": checkout_by,
        "notes": notes or "",
        "timestamp": (now or utcnow()).isoformat(),
    }


def decode_body(raw: bytes, charset: str | None) -> str:
    """Bytes the declared charset cannot decode become U+FFFD instead of failing the request."""
    try:
        return raw.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


class ApiClient:
    """
    HTTP client for the inventory backend.

    request() is the only place that touches the network; every transport
    error leaves it as NetworkFailureException. The cache layer uses it as its
    fetcher and the offline queue uses replay().
    """

    def __init__(self,
                 base_url: str = config.API_BASE_URL,
                 rate_limiter: RateLimiter | None = None,
                 session: aiohttp.ClientSession | None = None,
                 user_agent: str = config.API_USER_AGENT):
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.user_agent = user_agent
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers={
                "User-Agent": self.user_agent,
                "Accept": "application/json",
            })
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def ensure_within_limit(self, operation: RateLimitOperation, max_per_minute: int) -> None:
        if self.rate_limiter is None:
            return
        is_limited, _, _ = self.rate_limiter.is_rate_limited(operation.value, max_per_minute, 60)
        if is_limited:
            raise RateLimitExceededException(operation.value, max_per_minute, 60)

    async def request(self, path: str, method: str = "GET", timeout: float = config.REPLAY_TIMEOUT_SECONDS,
                      body: dict | None = None) -> HttpResponseDTO:
        if self._session is None:
            await self.start()
        url = f"{self.base_url}{path}"
        try:
            async with self._session.request(method, url, json=body,
                                             timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                raw = await response.read()
                return HttpResponseDTO(
                    status=response.status,
                    headers={key: value for key, value in response.headers.items()},
                    body=decode_body(raw, response.charset),
                    url=path,
                )
        except asyncio.TimeoutError:
            raise NetworkFailureException(method, url, f"timed out after {timeout}s")
        except aiohttp.ClientError as e:
            raise NetworkFailureException(method, url, str(e) or type(e).__name__)

    async def test_connection(self) -> bool:
        """Probe the items endpoint. Raises RateLimitExceededException when probed too often."""
        self.ensure_within_limit(RateLimitOperation.TEST_CONNECTION, config.RATE_LIMIT_TEST_CONNECTION_PER_MINUTE)
        try:
            response = await self.request("/api/items", "GET", config.CONNECTION_TEST_TIMEOUT_SECONDS)
        except NetworkFailureException as e:
            logger.info(f"[ApiClient] Connection test failed: {e.reason}")
            return False
        return response.ok

    async def checkout(self, payload: dict) -> HttpResponseDTO:
        """
        Submit a checkout.

        Servers without the bulk endpoint answer 404; in that case every line
        is posted to the per-item stock-out endpoint instead.
        """
        response = await self.request(CHECKOUT_PATH, "POST", config.REPLAY_TIMEOUT_SECONDS, payload)
        if response.status != 404:
            return response
        logger.info("[ApiClient] Bulk checkout unavailable, falling back to per-item checkout")
        for line in payload.get("items", []):
            response = await self.request(
                f"/api/items/{line['item_no']}/out", "POST", config.REPLAY_TIMEOUT_SECONDS,
                {"quantity": line["quantity"], "checkout_by": payload.get("checkout_by"),
                 "notes": payload.get("notes", "")},
            )
            if not response.ok:
                return response
        return response

    async def replay(self, item: OfflineQueueItemDTO) -> HttpResponseDTO:
        """
        Send a queued mutation to the server.

        Raises:
            ReplayFailedException: server rejected the call or could not be reached
        """
        try:
            if item.type == QueueActionType.CHECKOUT:
                response = await self.checkout(item.payload)
            elif item.type == QueueActionType.CART_ADD:
                response = await self.request(CART_ITEMS_PATH, "POST", config.REPLAY_TIMEOUT_SECONDS, item.payload)
            elif item.type == QueueActionType.CART_UPDATE:
                response = await self.request(f"{CART_ITEMS_PATH}/{item.entity_id}", "PUT",
                                              config.REPLAY_TIMEOUT_SECONDS, item.payload)
            else:
                response = await self.request(f"{CART_ITEMS_PATH}/{item.entity_id}", "DELETE",
                                              config.REPLAY_TIMEOUT_SECONDS)
        except NetworkFailureException as e:
            raise ReplayFailedException(item.id, item.type.value, e.reason)
        if not response.ok:
            raise ReplayFailedException(item.id, item.type.value, f"HTTP {response.status}", response.status)
        return response

    async def is_reachable(self, health_path: str = config.API_HEALTH_PATH) -> bool:
        """Raw connectivity signal: any answer below 500 from the health endpoint counts as online."""
        try:
            response = await self.request(health_path, "GET", config.CONNECTION_TEST_TIMEOUT_SECONDS)
        except NetworkFailureException:
            return False
        return response.status < 500
