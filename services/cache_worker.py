import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import config
from enums.control_message_type import ControlMessageType
from enums.worker_lifecycle import WorkerLifecycle
from exceptions.network import NetworkFailureException
from models.http import HttpResponseDTO
from services.cache_layer import NetworkCacheLayer, offline_fallback

logger = logging.getLogger(__name__)


@dataclass
class ControlMessage:
    type: ControlMessageType
    payload: dict[str, Any] = field(default_factory=dict)
    reply: asyncio.Future | None = None


class CacheWorker:
    """
    Runs the network cache layer in its own task.

    The UI talks to the worker only through post_message(); every request
    and reply is a plain value, nothing mutable is shared. Fetches are served
    concurrently, control messages in arrival order.
    """

    def __init__(self, cache_layer: NetworkCacheLayer, auto_activate: bool = config.CACHE_WORKER_AUTO_ACTIVATE):
        self.cache_layer = cache_layer
        self.auto_activate = auto_activate
        self.lifecycle = WorkerLifecycle.STOPPED
        self._mailbox: asyncio.Queue[ControlMessage | None] = asyncio.Queue()
        self._loop_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_active(self) -> bool:
        return self.lifecycle == WorkerLifecycle.ACTIVE

    async def start(self) -> None:
        if self._loop_task is not None:
            return
        self.lifecycle = WorkerLifecycle.INSTALLED
        logger.info(f"[CacheWorker] Installed cache version {config.CACHE_VERSION}")
        self._loop_task = asyncio.create_task(self._run())
        if self.auto_activate:
            await self._activate()

    async def _activate(self) -> None:
        if self.lifecycle != WorkerLifecycle.INSTALLED:
            return
        await self.cache_layer.purge_stale_versions()
        self.lifecycle = WorkerLifecycle.ACTIVE
        logger.info("[CacheWorker] Activated")

    async def post_message(self, message_type: ControlMessageType, payload: dict[str, Any] | None = None) -> Any:
        """
        Send a message to the worker.

        Returns the reply for message types that have one, None otherwise.
        """
        if self._loop_task is None:
            raise RuntimeError("Cache worker is not running")
        message = ControlMessage(type=message_type, payload=payload or {})
        if message_type.expects_reply:
            message.reply = asyncio.get_running_loop().create_future()
        await self._mailbox.put(message)
        if message.reply is not None:
            return await message.reply
        return None

    async def fetch(self, path: str, method: str = "GET", body: dict | None = None) -> HttpResponseDTO:
        return await self.post_message(ControlMessageType.FETCH, {"path": path, "method": method, "body": body})

    async def _run(self):
        while True:
            message = await self._mailbox.get()
            if message is None:
                break
            if message.type == ControlMessageType.FETCH:
                self._spawn(self._reply_with(message, self._handle_fetch(message.payload)))
            elif message.type == ControlMessageType.PREFETCH_DATA:
                self._spawn(self.cache_layer.prefetch(message.payload.get("paths")))
            else:
                await self._reply_with(message, self._handle_control(message))

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _reply_with(self, message: ControlMessage, coro):
        try:
            result = await coro
        except asyncio.CancelledError:
            if message.reply is not None and not message.reply.done():
                message.reply.cancel()
            raise
        except Exception as e:
            logger.error(f"[CacheWorker] {message.type.value} failed: {e}")
            if message.reply is not None and not message.reply.done():
                message.reply.set_exception(e)
            return
        if message.reply is not None and not message.reply.done():
            message.reply.set_result(result)

    async def _handle_control(self, message: ControlMessage) -> Any:
        if message.type == ControlMessageType.SKIP_WAITING:
            await self._activate()
            return None
        if message.type == ControlMessageType.GET_CACHE_STATUS:
            return await self.cache_layer.cache_status()
        if message.type == ControlMessageType.CLEAR_CACHE:
            return {"success": await self.cache_layer.clear_all()}
        logger.warning(f"[CacheWorker] Unknown message type: {message.type}")
        return None

    async def _handle_fetch(self, payload: dict[str, Any]) -> HttpResponseDTO:
        path, method, body = payload["path"], payload.get("method", "GET"), payload.get("body")
        if self.is_active:
            return await self.cache_layer.fetch(path, method, body)
        # Not intercepting yet: straight to the network
        try:
            return await self.cache_layer.fetcher(path, method, config.FETCH_TIMEOUT_PRODUCTS_SECONDS, body)
        except NetworkFailureException as e:
            logger.info(f"[CacheWorker] {method} {path} failed before activation: {e.reason}")
            return offline_fallback(path)

    async def close(self) -> None:
        if self._loop_task is None:
            return
        await self._mailbox.put(None)
        await self._loop_task
        self._loop_task = None
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.cache_layer.aclose()
        self.lifecycle = WorkerLifecycle.STOPPED
        logger.info("[CacheWorker] Stopped")
