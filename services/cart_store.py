import asyncio
import json
import logging
import platform
import uuid
from datetime import datetime, timedelta
from typing import Callable

from pydantic import ValidationError

import config
from exceptions.cart import ExpiredStateException, MalformedImportException
from exceptions.storage import StorageUnavailableException
from models.base import utcnow
from models.cart import (CartItemDTO, CartMetadataDTO, CartSnapshotDTO, CartStateDTO, CartSummaryDTO,
                         DeviceInfoDTO, HistoryEntryDTO)
from models.product import ProductDTO
from repositories.storage import KeyValueStorage

logger = logging.getLogger(__name__)


def generate_session_id(now: datetime) -> str:
    return f"cart_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


def describe_age(then: datetime, now: datetime) -> str:
    minutes = int((now - then).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    if days < 7:
        return f"{days} day{'s' if days != 1 else ''} ago"
    return then.date().isoformat()


class CartStore:
    """
    Durable cart session for a single device.

    The current state, its metadata and the recovery history live under three
    keys that are always written in one storage batch. Reads of an expired
    session purge it and report absence. A storage outage turns every call
    into a no-op returning None/False; the outage is logged once.
    """

    def __init__(self,
                 storage: KeyValueStorage,
                 clock: Callable[[], datetime] = utcnow,
                 namespace: str = config.STORAGE_NAMESPACE,
                 expiry_days: int = config.CART_EXPIRY_DAYS,
                 max_history: int = config.MAX_CART_HISTORY,
                 autosave_delay: float = config.CART_AUTOSAVE_DELAY_SECONDS,
                 device_info: DeviceInfoDTO | None = None):
        self.storage = storage
        self.clock = clock
        self.state_key = f"{namespace}_cart_v2"
        self.metadata_key = f"{namespace}_cart_metadata_v2"
        self.history_key = f"{namespace}_cart_history_v2"
        self.expiry = timedelta(days=expiry_days)
        self.expiry_days = expiry_days
        self.max_history = max_history
        self.autosave_delay = autosave_delay
        self.device_info = device_info or DeviceInfoDTO(
            user_agent=config.API_USER_AGENT,
            platform=platform.system() or "unknown",
        )
        self._pending_state: CartStateDTO | None = None
        self._autosave_task: asyncio.Task | None = None

    # Reads

    async def _read_state(self) -> CartStateDTO | None:
        raw = await self.storage.get(self.state_key)
        if raw is None:
            return None
        try:
            return CartStateDTO.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"[CartStore] Discarding unreadable cart state: {e.error_count()} validation errors")
            return None

    async def _read_metadata(self) -> CartMetadataDTO | None:
        raw = await self.storage.get(self.metadata_key)
        if raw is None:
            return None
        try:
            return CartMetadataDTO.model_validate_json(raw)
        except ValidationError:
            logger.warning("[CartStore] Discarding unreadable cart metadata")
            return None

    async def _read_history(self) -> list[HistoryEntryDTO]:
        raw = await self.storage.get(self.history_key)
        if raw is None:
            return []
        try:
            return [HistoryEntryDTO.model_validate(entry) for entry in json.loads(raw)]
        except (ValueError, TypeError):
            logger.warning("[CartStore] Discarding unreadable cart history")
            return []

    async def load(self) -> CartStateDTO | None:
        """
        Load the active session.

        Returns None if there is no session or if it is older than the
        retention window, in which case state and metadata are purged.
        Touches metadata.lastAccessedAt on every successful load.
        """
        try:
            state = await self._read_state()
            if state is None:
                return None
            now = self.clock()
            if now - state.last_updated > self.expiry:
                expired = ExpiredStateException(state.session_id, state.last_updated, self.expiry_days)
                logger.info(f"[CartStore] {expired}, purging")
                await self.storage.write_batch({}, [self.state_key, self.metadata_key])
                return None
            metadata = await self._read_metadata()
            if metadata is not None:
                metadata.last_accessed_at = now
                await self.storage.set(self.metadata_key, json.dumps(metadata.to_document()))
            return state
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return None

    async def load_metadata(self) -> CartMetadataDTO | None:
        try:
            return await self._read_metadata()
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return None

    async def get_history(self) -> list[HistoryEntryDTO]:
        """History snapshots, newest first."""
        try:
            return await self._read_history()
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return []

    # Writes

    def new_state(self) -> CartStateDTO:
        now = self.clock()
        return CartStateDTO(session_id=generate_session_id(now), last_updated=now)

    async def _write(self, state: CartStateDTO) -> None:
        now = self.clock()
        state.recalculate()
        state.last_updated = now

        previous = await self._read_state()
        metadata = await self._read_metadata()
        created_at = now
        if metadata is not None and previous is not None and previous.session_id == state.session_id:
            created_at = metadata.created_at
        metadata = CartMetadataDTO(
            version=config.CART_SCHEMA_VERSION,
            created_at=created_at,
            last_accessed_at=now,
            device_info=self.device_info,
        )

        entry = HistoryEntryDTO(
            entry_id=f"history_{state.session_id}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:6]}",
            saved_at=now,
            state=state.model_copy(deep=True),
        )
        history = [entry] + await self._read_history()
        history = history[:self.max_history]

        await self.storage.write_batch({
            self.state_key: json.dumps(state.to_document()),
            self.metadata_key: json.dumps(metadata.to_document()),
            self.history_key: json.dumps([h.to_document() for h in history]),
        })

    async def save(self, state: CartStateDTO) -> bool:
        try:
            await self._write(state)
            return True
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False

    async def _current_or_new(self) -> CartStateDTO:
        return await self.load() or self.new_state()

    async def add_item(self, product: ProductDTO, quantity: int = 1, notes: str | None = None) -> bool:
        if quantity <= 0:
            return False
        try:
            state = await self._current_or_new()
            existing = state.find_item(product.id)
            if existing is not None:
                existing.quantity += quantity
                if notes is not None:
                    existing.notes = notes
            else:
                state.items.append(CartItemDTO(
                    id=product.id,
                    product_snapshot=product,
                    quantity=quantity,
                    added_at=self.clock(),
                    notes=notes,
                ))
            await self._write(state)
            return True
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False

    async def remove_item(self, item_id: str) -> bool:
        try:
            state = await self.load()
            if state is None or state.find_item(item_id) is None:
                return False
            state.items = [item for item in state.items if item.id != item_id]
            await self._write(state)
            return True
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False

    async def set_quantity(self, item_id: str, quantity: int) -> bool:
        if quantity <= 0:
            return await self.remove_item(item_id)
        try:
            state = await self.load()
            item = state.find_item(item_id) if state is not None else None
            if item is None:
                return False
            item.quantity = quantity
            await self._write(state)
            return True
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False

    async def clear(self) -> bool:
        """Drop the current session and its metadata. History is kept for recovery."""
        self._cancel_autosave()
        self._pending_state = None
        try:
            await self.storage.write_batch({}, [self.state_key, self.metadata_key])
            logger.info("[CartStore] Cart cleared")
            return True
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False

    async def restore_from_history(self, entry_id: str) -> bool:
        history = await self.get_history()
        entry = next((h for h in history if h.entry_id == entry_id), None)
        if entry is None:
            logger.warning(f"[CartStore] History entry {entry_id} not found")
            return False
        restored = entry.state.model_copy(deep=True)
        restored.session_id = generate_session_id(self.clock())
        return await self.save(restored)

    # Export / import

    async def export_snapshot(self) -> str:
        try:
            state = await self._read_state()
            metadata = await self._read_metadata()
            history = await self._read_history()
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            state, metadata, history = None, None, []
        document = {
            "current": state.to_document() if state else None,
            "metadata": metadata.to_document() if metadata else None,
            "history": [h.to_document() for h in history],
            "exportedAt": self.clock().isoformat(),
            "version": config.CART_SCHEMA_VERSION,
        }
        return json.dumps(document, indent=2)

    def _parse_snapshot(self, raw: str) -> CartSnapshotDTO:
        try:
            document = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise MalformedImportException(f"not valid JSON ({e})")
        if not isinstance(document, dict):
            raise MalformedImportException("document is not an object")
        if document.get("current") is None:
            raise MalformedImportException("missing 'current' cart state")
        document.setdefault("exportedAt", self.clock().isoformat())
        document.setdefault("version", config.CART_SCHEMA_VERSION)
        try:
            return CartSnapshotDTO.model_validate(document)
        except ValidationError as e:
            raise MalformedImportException(f"{e.error_count()} invalid fields")

    async def import_snapshot(self, raw: str) -> bool:
        """
        Replace the current session with the one in an exported document.

        The whole document is validated before anything is written, so a
        rejected import leaves storage untouched.
        """
        try:
            snapshot = self._parse_snapshot(raw)
        except MalformedImportException as e:
            logger.warning(f"[CartStore] {e}")
            return False
        self._cancel_autosave()
        self._pending_state = None
        return await self.save(snapshot.current)

    # Queries

    async def summary(self) -> CartSummaryDTO:
        state = await self.load()
        if state is None:
            return CartSummaryDTO(item_count=0, total_value=0, session_age="No active cart")
        return CartSummaryDTO(
            item_count=state.total_items,
            total_value=state.total_value,
            session_age=describe_age(state.last_updated, self.clock()),
        )

    async def is_item_in_cart(self, item_id: str) -> bool:
        state = await self.load()
        return state is not None and state.find_item(item_id) is not None

    async def get_item_quantity(self, item_id: str) -> int:
        state = await self.load()
        item = state.find_item(item_id) if state is not None else None
        return item.quantity if item else 0

    # Debounced autosave

    def _cancel_autosave(self):
        if self._autosave_task is not None and not self._autosave_task.done():
            self._autosave_task.cancel()
        self._autosave_task = None

    def save_debounced(self, state: CartStateDTO) -> None:
        """Schedule a save; calls within the autosave delay collapse into one write of the latest state."""
        self._pending_state = state
        self._cancel_autosave()
        self._autosave_task = asyncio.create_task(self._autosave_later())

    async def _autosave_later(self):
        await asyncio.sleep(self.autosave_delay)
        state, self._pending_state = self._pending_state, None
        self._autosave_task = None
        if state is not None:
            await self.save(state)

    async def flush(self) -> bool:
        self._cancel_autosave()
        state, self._pending_state = self._pending_state, None
        if state is None:
            return True
        return await self.save(state)

    async def close(self) -> None:
        await self.flush()
