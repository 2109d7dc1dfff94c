from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from models.kv_record import KeyValueRecord


class KeyValueRecordRepository:
    """
    Repository for the kv_records table.

    Callers own the session and the transaction: several calls made inside one
    session commit together or not at all.
    """

    @staticmethod
    async def get(key: str, session: AsyncSession) -> str | None:
        stmt = select(KeyValueRecord).where(KeyValueRecord.key == key)
        result = await session.execute(stmt)
        record = result.scalar()
        return record.value if record else None

    @staticmethod
    async def set(key: str, value: str, session: AsyncSession) -> None:
        """
        Insert or update a record.

        Args:
            key: Namespaced record key
            value: Serialized JSON document
            session: Database session
        """
        stmt = select(KeyValueRecord).where(KeyValueRecord.key == key)
        result = await session.execute(stmt)
        existing = result.scalar()
        if existing is not None:
            existing.value = value
        else:
            session.add(KeyValueRecord(key=key, value=value))
        await session.flush()

    @staticmethod
    async def delete(key: str, session: AsyncSession) -> None:
        stmt = delete(KeyValueRecord).where(KeyValueRecord.key == key)
        await session.execute(stmt)

    @staticmethod
    async def get_keys(prefix: str, session: AsyncSession) -> list[str]:
        stmt = select(KeyValueRecord.key).where(KeyValueRecord.key.startswith(prefix, autoescape=True))
        result = await session.execute(stmt)
        return list(result.scalars().all())
