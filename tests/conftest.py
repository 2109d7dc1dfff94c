"""
Pytest configuration and fixtures for tests.

This file is automatically loaded by pytest and provides shared fixtures
and configuration for all tests.
"""

import sys
import os
import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis

# Add parent directory to Python path so tests can import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Seed configuration before config.py is imported anywhere
os.environ.setdefault("RUNTIME_ENVIRONMENT", "TEST")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("API_BASE_URL", "http://pos-backend.test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("CART_AUTOSAVE_DELAY_SECONDS", "0.05")

from exceptions.network import NetworkFailureException
from models.http import HttpResponseDTO
from models.product import ProductDTO
from repositories.storage import MemoryStorage, RedisStorage, SqliteStorage


# ============================================================================
# Time
# ============================================================================

class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock frozen at 2026-01-15 12:00 UTC."""
    return FakeClock(datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc))


# ============================================================================
# Storage Fixtures
# ============================================================================

@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest_asyncio.fixture
async def sqlite_storage():
    """SQLite storage on an in-memory database."""
    storage = SqliteStorage(":memory:")
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def redis_client():
    """Create fake Redis client for testing (no real Redis server needed)."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def redis_storage(redis_client):
    return RedisStorage(redis_client)


# ============================================================================
# Domain Fixtures
# ============================================================================

@pytest.fixture
def make_product():
    """Factory for catalog product snapshots."""
    def _make(product_id: str = "HAM-001", name: str = "Claw Hammer", price: float | None = None,
              balance: float = 25) -> ProductDTO:
        return ProductDTO(
            id=product_id,
            name=name,
            brand="Stanley",
            item_type="Hand Tools",
            location="Aisle 3",
            balance=balance,
            status=ProductDTO.status_for(balance),
            price=price,
        )
    return _make


# ============================================================================
# Network Fixtures
# ============================================================================

class FakeFetcher:
    """
    Stand-in for ApiClient.request.

    Answers from a per-path table of responses; paths listed in `failing`
    raise NetworkFailureException. Every call is recorded.
    """

    def __init__(self):
        self.responses: dict[str, HttpResponseDTO] = {}
        self.failing: set[str] = set()
        self.offline = False
        self.calls: list[tuple[str, str]] = []

    def respond(self, path: str, payload, status: int = 200):
        self.responses[path] = HttpResponseDTO(
            status=status,
            headers={"Content-Type": "application/json"},
            body=json.dumps(payload),
            url=path,
        )

    async def __call__(self, path: str, method: str = "GET", timeout: float = 5, body: dict | None = None):
        self.calls.append((method, path))
        if self.offline or path in self.failing:
            raise NetworkFailureException(method, f"http://pos-backend.test{path}", "connection refused")
        if path in self.responses:
            return self.responses[path]
        return HttpResponseDTO(status=404, body="{}", url=path)


@pytest.fixture
def fetcher():
    return FakeFetcher()
