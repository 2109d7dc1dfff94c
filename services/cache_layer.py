import asyncio
import json
import logging
from datetime import datetime
from typing import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit

from pydantic import ValidationError

import config
from enums.cache_class import CacheBucket, CacheClass
from enums.cache_entry_state import CacheEntryState
from exceptions.network import NetworkFailureException
from exceptions.storage import StorageUnavailableException
from models.base import utcnow
from models.cache_entry import CacheEntryDTO, CacheMetadataDTO
from models.http import HttpResponseDTO
from repositories.storage import KeyValueStorage
from utils.cache_state_machine import CacheStateTracker

logger = logging.getLogger(__name__)

STATIC_ASSETS = ["/", "/favicon.ico"]
STATIC_PREFIXES = ["/_next/static/"]
API_ENDPOINTS = ["/api/items", "/api/employees", "/api/employee-logs"]
CRITICAL_ENDPOINTS = ["/api/items", "/api/employees"]

OFFLINE_ERROR = "Offline mode: No cached data available"
SERVED_BY_HEADER = "X-Served-By"
CACHE_STATUS_HEADER = "X-Cache-Status"

Fetcher = Callable[[str, str, float, dict | None], Awaitable[HttpResponseDTO]]


def canonical_path(path: str) -> str:
    """Path plus query string with parameters in sorted order."""
    parts = urlsplit(path)
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return f"{parts.path or '/'}?{query}" if query else (parts.path or "/")


def classify(path: str) -> CacheClass:
    route = urlsplit(path).path
    if "employee" in route:
        return CacheClass.EMPLOYEES
    if route in STATIC_ASSETS or any(route.startswith(prefix) for prefix in STATIC_PREFIXES):
        return CacheClass.STATIC
    return CacheClass.PRODUCTS


def bucket_for(path: str) -> CacheBucket:
    route = urlsplit(path).path
    if "/api/" in route:
        return CacheBucket.API
    if route in STATIC_ASSETS:
        return CacheBucket.MAIN
    return CacheBucket.STATIC


def is_intercepted(path: str) -> bool:
    route = urlsplit(path).path
    return (route in STATIC_ASSETS
            or any(route.startswith(prefix) for prefix in STATIC_PREFIXES)
            or any(route == endpoint or route.startswith(f"{endpoint}/") for endpoint in API_ENDPOINTS))


def offline_fallback(path: str) -> HttpResponseDTO:
    return HttpResponseDTO(
        status=503,
        headers={"Content-Type": "application/json", SERVED_BY_HEADER: "cache-offline-fallback"},
        body=json.dumps({"success": False, "error": OFFLINE_ERROR, "offline": True, "data": []}),
        url=path,
        offline=True,
    )


class NetworkCacheLayer:
    """
    Cache-first filter in front of GET traffic.

    Fresh entries are served immediately while a background task refreshes
    them. Stale or missing entries go to the network; any network failure
    falls back to the last stored entry regardless of age, or to a 503
    offline envelope. Callers never see a network exception.
    """

    def __init__(self,
                 storage: KeyValueStorage,
                 fetcher: Fetcher,
                 clock: Callable[[], datetime] = utcnow,
                 namespace: str = config.STORAGE_NAMESPACE,
                 cache_version: str = config.CACHE_VERSION,
                 revalidate_in_background: bool = True):
        self.storage = storage
        self.fetcher = fetcher
        self.clock = clock
        self.cache_prefix = f"{namespace}_cache_"
        self.version_prefix = f"{self.cache_prefix}{cache_version}_"
        self.revalidate_in_background = revalidate_in_background
        self.tracker = CacheStateTracker()
        self._background: set[asyncio.Task] = set()
        self._revalidating: set[str] = set()

    def _key(self, bucket: CacheBucket, path: str) -> str:
        return f"{self.version_prefix}{bucket.value}|{path}"

    def state_of(self, path: str) -> CacheEntryState:
        return self.tracker.state_of(canonical_path(path))

    async def _read_entry(self, path: str) -> CacheEntryDTO | None:
        try:
            raw = await self.storage.get(self._key(bucket_for(path), path))
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return None
        if raw is None:
            return None
        try:
            return CacheEntryDTO.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"[CacheLayer] Ignoring unreadable cache entry for {path}")
            return None

    async def _store(self, path: str, response: HttpResponseDTO, cache_class: CacheClass) -> None:
        entry = CacheEntryDTO(
            path=path,
            status=response.status,
            headers=response.headers,
            body=response.body,
            metadata=CacheMetadataDTO(
                cached_at=self.clock(),
                cache_class=cache_class,
                url=response.url or path,
                status=response.status,
            ),
        )
        try:
            await self.storage.set(self._key(bucket_for(path), path), json.dumps(entry.to_document()))
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)

    def _is_fresh(self, entry: CacheEntryDTO) -> bool:
        return self.clock() - entry.metadata.cached_at < entry.metadata.cache_class.ttl

    @staticmethod
    def _from_entry(entry: CacheEntryDTO, offline: bool) -> HttpResponseDTO:
        headers = dict(entry.headers)
        headers[SERVED_BY_HEADER] = "cache"
        if offline:
            headers[CACHE_STATUS_HEADER] = "offline"
        return HttpResponseDTO(status=entry.status, headers=headers, body=entry.body,
                               url=entry.metadata.url, from_cache=True, offline=offline)

    async def fetch(self, path: str, method: str = "GET", body: dict | None = None) -> HttpResponseDTO:
        if method.upper() != "GET" or not is_intercepted(path):
            return await self._pass_through(path, method.upper(), body)

        path = canonical_path(path)
        cache_class = classify(path)
        entry = await self._read_entry(path)

        if entry is not None and self._is_fresh(entry):
            self.tracker.transition(path, CacheEntryState.FRESH)
            logger.debug(f"[CacheLayer] Serving from cache: {path}")
            if self.revalidate_in_background:
                self._schedule_revalidation(path, cache_class)
            return self._from_entry(entry, offline=False)

        if entry is not None and self.tracker.state_of(path) in (CacheEntryState.MISS, CacheEntryState.FRESH):
            self.tracker.transition(path, CacheEntryState.STALE)
        self.tracker.transition(path, CacheEntryState.FETCHING)
        try:
            response = await self.fetcher(path, "GET", cache_class.timeout_seconds, None)
        except NetworkFailureException as e:
            logger.info(f"[CacheLayer] Network failed, trying cache: {e.reason}")
            self.tracker.transition(path, CacheEntryState.OFFLINE_FALLBACK)
            if entry is not None:
                logger.info(f"[CacheLayer] Serving stale cache due to network failure: {path}")
                return self._from_entry(entry, offline=True)
            return offline_fallback(path)

        if response.ok:
            await self._store(path, response, cache_class)
            self.tracker.transition(path, CacheEntryState.FRESH)
            logger.debug(f"[CacheLayer] Cached response: {path}")
        else:
            self.tracker.transition(path, CacheEntryState.STALE if entry is not None else CacheEntryState.MISS)
        return response

    async def _pass_through(self, path: str, method: str, body: dict | None) -> HttpResponseDTO:
        try:
            return await self.fetcher(path, method, classify(path).timeout_seconds, body)
        except NetworkFailureException as e:
            logger.info(f"[CacheLayer] {method} {path} failed while offline: {e.reason}")
            return offline_fallback(path)

    def _schedule_revalidation(self, path: str, cache_class: CacheClass):
        if path in self._revalidating:
            return
        self._revalidating.add(path)
        task = asyncio.create_task(self._revalidate(path, cache_class))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _revalidate(self, path: str, cache_class: CacheClass):
        try:
            response = await self.fetcher(path, "GET", cache_class.timeout_seconds, None)
            if response.ok:
                await self._store(path, response, cache_class)
                self.tracker.transition(path, CacheEntryState.FRESH)
        except NetworkFailureException as e:
            logger.debug(f"[CacheLayer] Background update failed for {path}: {e.reason}")
        finally:
            self._revalidating.discard(path)

    async def wait_for_background(self):
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # Control operations

    async def cache_status(self) -> dict[str, int]:
        status = {bucket.value: 0 for bucket in (CacheBucket.API, CacheBucket.STATIC, CacheBucket.MAIN)}
        try:
            keys = await self.storage.keys(self.version_prefix)
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            keys = []
        for key in keys:
            bucket = key[len(self.version_prefix):].split("|", 1)[0]
            if bucket in status:
                status[bucket] += 1
        status["total"] = sum(status.values())
        return status

    async def clear_all(self) -> bool:
        try:
            keys = await self.storage.keys(self.cache_prefix)
            if keys:
                await self.storage.write_batch({}, keys)
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False
        self.tracker.reset()
        logger.info(f"[CacheLayer] Cleared {len(keys)} cached responses")
        return True

    async def purge_stale_versions(self) -> int:
        """Delete entries written under any other cache version."""
        try:
            keys = await self.storage.keys(self.cache_prefix)
            stale = [key for key in keys if not key.startswith(self.version_prefix)]
            if stale:
                await self.storage.write_batch({}, stale)
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return 0
        if stale:
            logger.info(f"[CacheLayer] Deleted {len(stale)} entries from old cache versions")
        return len(stale)

    async def prefetch(self, paths: list[str] | None = None) -> int:
        """Warm the cache from the network. Returns the number of paths stored."""
        stored = 0
        for path in paths or CRITICAL_ENDPOINTS:
            path = canonical_path(path)
            cache_class = classify(path)
            try:
                response = await self.fetcher(path, "GET", cache_class.timeout_seconds, None)
            except NetworkFailureException as e:
                logger.info(f"[CacheLayer] Prefetch failed for {path}: {e.reason}")
                continue
            if response.ok:
                await self._store(path, response, cache_class)
                self.tracker.transition(path, CacheEntryState.FETCHING)
                self.tracker.transition(path, CacheEntryState.FRESH)
                stored += 1
        logger.info(f"[CacheLayer] Prefetched {stored} critical endpoints")
        return stored

    async def aclose(self):
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
        self._revalidating.clear()
