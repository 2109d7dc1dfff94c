import json
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

import config
from enums.queue_action_type import QueueActionType
from exceptions.queue import QueueExhaustedException
from exceptions.storage import StorageUnavailableException
from models.base import utcnow
from models.offline_queue import DrainResultDTO, OfflineQueueItemDTO
from repositories.storage import KeyValueStorage

logger = logging.getLogger(__name__)

Replayer = Callable[[OfflineQueueItemDTO], Awaitable[Any]]


class OfflineQueue:
    """
    Persisted FIFO of mutations made while offline.

    drain() replays items in enqueue order. A failed item keeps its place and
    gains a retry; at max_retries it is dropped with a warning. Later items
    touching the same product wait for the next drain, and a checkout waits
    whenever anything before it failed in the same pass.
    """

    def __init__(self,
                 storage: KeyValueStorage,
                 replayer: Replayer,
                 clock: Callable[[], datetime] = utcnow,
                 namespace: str = config.STORAGE_NAMESPACE,
                 max_retries: int = config.OFFLINE_QUEUE_MAX_RETRIES,
                 on_drained: Callable[[DrainResultDTO], None] | None = None):
        self.storage = storage
        self.replayer = replayer
        self.clock = clock
        self.queue_key = f"{namespace}-offline-queue"
        self.max_retries = max_retries
        self.on_drained = on_drained
        self._draining = False

    @property
    def sync_in_progress(self) -> bool:
        return self._draining

    async def _read(self) -> list[OfflineQueueItemDTO]:
        raw = await self.storage.get(self.queue_key)
        if raw is None:
            return []
        try:
            documents = json.loads(raw)
        except (ValueError, TypeError):
            documents = None
        if not isinstance(documents, list):
            logger.warning("[OfflineQueue] Discarding unreadable offline queue")
            return []
        items = []
        for document in documents:
            try:
                items.append(OfflineQueueItemDTO.model_validate(document))
            except ValidationError:
                logger.warning(f"[OfflineQueue] Skipping unreadable queue item: {document!r:.200}")
        return items

    async def _write(self, items: list[OfflineQueueItemDTO]) -> None:
        if items:
            await self.storage.set(self.queue_key, json.dumps([item.to_document() for item in items]))
        else:
            await self.storage.delete(self.queue_key)

    async def enqueue(self, action: QueueActionType, payload: dict[str, Any]) -> str | None:
        """Append a mutation. Returns its id, or None if storage is unavailable."""
        item = OfflineQueueItemDTO(
            id=uuid.uuid4().hex,
            type=action,
            payload=payload,
            enqueued_at=self.clock(),
        )
        try:
            items = await self._read()
            items.append(item)
            await self._write(items)
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return None
        logger.info(f"[OfflineQueue] Queued {action.value} ({item.id}), {len(items)} pending")
        return item.id

    async def items(self) -> list[OfflineQueueItemDTO]:
        try:
            return await self._read()
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return []

    async def size(self) -> int:
        return len(await self.items())

    async def clear(self) -> bool:
        try:
            await self.storage.delete(self.queue_key)
            return True
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False

    async def _apply(self, resolved: set[str], retries: dict[str, int]) -> int:
        """
        Fold drain progress into the stored queue.

        Re-reads storage so items enqueued, or a clear() issued, while the
        drain was suspended are kept as they are. Returns the new queue length.
        """
        current = await self._read()
        remaining = []
        for item in current:
            if item.id in resolved:
                continue
            if item.id in retries:
                item.retry_count = max(item.retry_count, retries[item.id])
            remaining.append(item)
        await self._write(remaining)
        return len(remaining)

    async def drain(self) -> DrainResultDTO:
        if self._draining:
            logger.debug("[OfflineQueue] Drain already in progress, skipping")
            return DrainResultDTO(remaining=await self.size(), skipped=True)

        self._draining = True
        result = DrainResultDTO()
        try:
            pending = await self._read()
            if not pending:
                return result
            logger.info(f"[OfflineQueue] Processing {len(pending)} offline actions")

            resolved: set[str] = set()
            retries: dict[str, int] = {}
            failed_entities: set[str] = set()
            earlier_failure = False

            for item in pending:
                if (item.type == QueueActionType.CHECKOUT and earlier_failure) or \
                        (item.entity_id is not None and item.entity_id in failed_entities):
                    result.deferred += 1
                    continue

                try:
                    await self.replayer(item)
                    resolved.add(item.id)
                    result.processed += 1
                except Exception as e:
                    earlier_failure = True
                    if item.entity_id is not None:
                        failed_entities.add(item.entity_id)
                    retry_count = item.retry_count + 1
                    if retry_count >= self.max_retries:
                        exhausted = QueueExhaustedException(item.id, item.type.value, retry_count)
                        logger.warning(f"[OfflineQueue] {exhausted}: {e}")
                        resolved.add(item.id)
                        result.dropped += 1
                    else:
                        logger.info(f"[OfflineQueue] {item.type.value} ({item.id}) failed, "
                                    f"attempt {retry_count}/{self.max_retries}: {e}")
                        retries[item.id] = retry_count

                # Persist after every attempt so a crash never replays a confirmed item
                await self._apply(resolved, retries)

            result.remaining = await self._apply(resolved, retries)
            logger.info(f"[OfflineQueue] Processed {result.processed} offline actions, "
                        f"{result.remaining} remaining, {result.dropped} dropped")
            if self.on_drained is not None:
                self.on_drained(result)
            return result
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return result
        finally:
            self._draining = False
