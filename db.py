from contextlib import asynccontextmanager
from pathlib import Path
import logging

from sqlalchemy import event, Engine, text
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.pool import StaticPool

from models.base import Base
"""
Imports of these models are needed to correctly create tables in the database.
For more information see https://stackoverflow.com/questions/7478403/sqlalchemy-classes-across-files
"""
from models.kv_record import KeyValueRecord

logger = logging.getLogger(__name__)

# HARD DISABLE SQL echo, statements would drown the sync logs
sql_echo = False

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


def database_url(db_path: str) -> str:
    if db_path == ":memory:":
        return MEMORY_URL
    return f"sqlite+aiosqlite:///{db_path}"


def build_engine(url: str) -> AsyncEngine:
    if url == MEMORY_URL:
        # One shared connection, otherwise every checkout sees an empty database
        return create_async_engine(url, echo=sql_echo, poolclass=StaticPool,
                                   connect_args={'check_same_thread': False})
    db_file = Path(url.split("///", 1)[1])
    if db_file.parent.exists() is False:
        db_file.parent.mkdir(parents=True)
    return create_async_engine(url, echo=sql_echo)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def get_db_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncSession:
    session = None
    try:
        async with session_maker() as async_session:
            session = async_session
            yield session
    finally:
        if session is not None:
            await session.close()


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def check_all_tables_exist(session: AsyncSession) -> bool:
    for table in Base.metadata.tables.values():
        result = await session.execute(
            text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
            {"name": table.name},
        )
        if result.scalar() is None:
            return False
    return True


async def create_db_and_tables(engine: AsyncEngine, session_maker: async_sessionmaker[AsyncSession]):
    async with get_db_session(session_maker) as session:
        if await check_all_tables_exist(session):
            return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"[Database] Created tables: {', '.join(Base.metadata.tables)}")
