import asyncio
import logging
from typing import Awaitable, Callable

import config

logger = logging.getLogger(__name__)

ReconnectCallback = Callable[[], Awaitable[object]]


class ConnectivityMonitor:
    """
    Edge-triggered view of the platform's online signal.

    update() is fed the raw boolean. Only the offline->online edge has an
    effect beyond the status flag: every reconnect callback runs exactly once
    per edge as a tracked background task. No debouncing.
    """

    def __init__(self, initial_online: bool = True):
        self._online = initial_online
        self._callbacks: list[ReconnectCallback] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_online(self) -> bool:
        return self._online

    def on_reconnect(self, callback: ReconnectCallback) -> None:
        self._callbacks.append(callback)

    def update(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        if not online:
            logger.info("[Connectivity] Gone offline")
            return
        logger.info("[Connectivity] Back online - connection restored")
        for callback in self._callbacks:
            task = asyncio.create_task(self._run_callback(callback))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run_callback(callback: ReconnectCallback):
        try:
            await callback()
        except Exception as e:
            logger.error(f"[Connectivity] Reconnect handler failed: {e}", exc_info=True)

    async def wait_for_pending(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


class HealthCheckSignal:
    """Polls a reachability probe at a fixed interval and feeds the result to the monitor."""

    def __init__(self, monitor: ConnectivityMonitor, probe: Callable[[], Awaitable[bool]],
                 interval: float = config.CONNECTIVITY_POLL_SECONDS):
        self.monitor = monitor
        self.probe = probe
        self.interval = interval
        self._task: asyncio.Task | None = None

    async def poll_once(self) -> bool:
        try:
            online = await self.probe()
        except Exception as e:
            logger.error(f"[Connectivity] Health probe error: {e}")
            online = False
        self.monitor.update(online)
        return online

    async def _loop(self):
        logger.info(f"[Connectivity] Polling backend health every {self.interval}s")
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
