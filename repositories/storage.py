"""
Key-value persistence medium.

Every backend stores JSON documents as strings under namespaced keys and
reports any driver failure as StorageUnavailableException. Callers above this
layer never see SQLAlchemy, Redis or OS errors.
"""

import logging
from abc import ABC, abstractmethod

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

import config
from db import build_engine, build_session_maker, create_db_and_tables, database_url, get_db_session
from enums.storage_backend import StorageBackend
from exceptions.storage import StorageUnavailableException
from repositories.kv_record import KeyValueRecordRepository

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    backend: StorageBackend

    def __init__(self):
        self._unavailable_reported = False

    @abstractmethod
    async def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        ...

    @abstractmethod
    async def write_batch(self, sets: dict[str, str], deletes: list[str] | None = None) -> None:
        """Apply all sets and deletes atomically: either every change lands or none does."""
        ...

    async def probe(self) -> bool:
        """Return True if the medium accepts reads right now."""
        try:
            await self.get(f"{config.STORAGE_NAMESPACE}_probe")
            return True
        except StorageUnavailableException as e:
            self.report_unavailable(e)
            return False

    async def close(self) -> None:
        pass

    def report_unavailable(self, error: StorageUnavailableException) -> None:
        """Log a storage outage once per storage instance."""
        if self._unavailable_reported:
            logger.debug(f"[Storage] {error}")
            return
        self._unavailable_reported = True
        logger.error(f"[Storage] Persistence medium unavailable, running without durability: {error}")


class MemoryStorage(KeyValueStorage):
    """Volatile dict-backed storage. Used in tests and as a last-resort fallback."""
    backend = StorageBackend.MEMORY

    def __init__(self):
        super().__init__()
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def keys(self, prefix: str) -> list[str]:
        return [key for key in self.data if key.startswith(prefix)]

    async def write_batch(self, sets: dict[str, str], deletes: list[str] | None = None) -> None:
        updated = dict(self.data)
        updated.update(sets)
        for key in deletes or []:
            updated.pop(key, None)
        self.data = updated


class SqliteStorage(KeyValueStorage):
    backend = StorageBackend.SQLITE

    def __init__(self, db_path: str = config.STORAGE_DB_PATH):
        super().__init__()
        self.url = database_url(db_path)
        self.engine = build_engine(self.url)
        self.session_maker = build_session_maker(self.engine)
        self._tables_ready = False

    async def _ensure_tables(self):
        if not self._tables_ready:
            await create_db_and_tables(self.engine, self.session_maker)
            self._tables_ready = True

    def _unavailable(self, operation: str, e: Exception) -> StorageUnavailableException:
        return StorageUnavailableException(self.backend.value, operation, str(e))

    async def get(self, key: str) -> str | None:
        try:
            await self._ensure_tables()
            async with get_db_session(self.session_maker) as session:
                return await KeyValueRecordRepository.get(key, session)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("get", e) from e

    async def set(self, key: str, value: str) -> None:
        await self.write_batch({key: value})

    async def delete(self, key: str) -> None:
        await self.write_batch({}, [key])

    async def keys(self, prefix: str) -> list[str]:
        try:
            await self._ensure_tables()
            async with get_db_session(self.session_maker) as session:
                return await KeyValueRecordRepository.get_keys(prefix, session)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("keys", e) from e

    async def write_batch(self, sets: dict[str, str], deletes: list[str] | None = None) -> None:
        try:
            await self._ensure_tables()
            async with get_db_session(self.session_maker) as session:
                async with session.begin():
                    for key, value in sets.items():
                        await KeyValueRecordRepository.set(key, value, session)
                    for key in deletes or []:
                        await KeyValueRecordRepository.delete(key, session)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("write_batch", e) from e

    async def close(self) -> None:
        await self.engine.dispose()


class RedisStorage(KeyValueStorage):
    backend = StorageBackend.REDIS

    def __init__(self, redis: Redis):
        super().__init__()
        self.redis = redis

    def _unavailable(self, operation: str, e: Exception) -> StorageUnavailableException:
        return StorageUnavailableException(self.backend.value, operation, str(e))

    async def get(self, key: str) -> str | None:
        try:
            return await self.redis.get(key)
        except (RedisError, OSError) as e:
            raise self._unavailable("get", e) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self.redis.set(key, value)
        except (RedisError, OSError) as e:
            raise self._unavailable("set", e) from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except (RedisError, OSError) as e:
            raise self._unavailable("delete", e) from e

    async def keys(self, prefix: str) -> list[str]:
        try:
            return [key async for key in self.redis.scan_iter(match=f"{prefix}*")]
        except (RedisError, OSError) as e:
            raise self._unavailable("keys", e) from e

    async def write_batch(self, sets: dict[str, str], deletes: list[str] | None = None) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for key, value in sets.items():
                    pipe.set(key, value)
                if deletes:
                    pipe.delete(*deletes)
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise self._unavailable("write_batch", e) from e

    async def close(self) -> None:
        await self.redis.aclose()


def build_storage(backend: StorageBackend = config.STORAGE_BACKEND) -> KeyValueStorage:
    if backend == StorageBackend.REDIS:
        redis = Redis(host=config.REDIS_HOST, port=config.REDIS_PORT,
                      password=config.REDIS_PASSWORD, decode_responses=True)
        return RedisStorage(redis)
    if backend == StorageBackend.MEMORY:
        return MemoryStorage()
    return SqliteStorage(config.STORAGE_DB_PATH)
