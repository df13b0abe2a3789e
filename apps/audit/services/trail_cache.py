"""
Per-entity audit trail cache

Each entity moves absent -> loading -> populated. Fresh entries are served
without a fetch, concurrent fetches for one entity are collapsed into the one
already in flight, and refresh bursts are debounced through the Scheduler.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from django.conf import settings

from apps.core.scheduling import Scheduler

logger = logging.getLogger(__name__)

ABSENT = "absent"
LOADING = "loading"
POPULATED = "populated"


@dataclass
class _CacheEntry:
    data: List[dict] = field(default_factory=list)
    fetched_at: Optional[float] = None
    loading: bool = False
    error: Optional[str] = None


class AuditTrailCache:
    def __init__(
        self,
        fetcher: Callable[[str], Awaitable[List[dict]]],
        ttl: Optional[float] = None,
        scheduler: Scheduler = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetcher = fetcher
        self.ttl = ttl if ttl is not None else settings.AUDIT_TRAIL_CACHE_TTL
        self._scheduler = scheduler or Scheduler()
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._refresh_keys = set()

    # --- State ---

    def state(self, entity_id: str) -> str:
        if entity_id in self._in_flight:
            return LOADING
        entry = self._entries.get(entity_id)
        if entry is None or entry.fetched_at is None:
            return ABSENT
        return POPULATED

    def _is_fresh(self, entry: _CacheEntry) -> bool:
        return entry.fetched_at is not None and (self._clock() - entry.fetched_at) < self.ttl

    def get_audit_trail(self, entity_id: str) -> dict:
        entry = self._entries.get(entity_id) or _CacheEntry()
        return {
            "audit_trail": list(entry.data),
            "loading": entry.loading,
            "last_fetched": entry.fetched_at,
            "error": entry.error,
        }

    def error(self, entity_id: str) -> Optional[str]:
        entry = self._entries.get(entity_id)
        return entry.error if entry else None

    # --- Fetching ---

    async def fetch_audit_trail(self, entity_id: str, force_refresh: bool = False, show_loading: bool = True) -> List[dict]:
        """
        Audit trail of one entity

        Serves a fresh cache entry without a network call unless forced. While
        a fetch for the entity is in flight, returns the last known data
        instead of issuing a second request.
        """
        if not entity_id:
            return []

        entry = self._entries.get(entity_id)
        if not force_refresh and entry is not None and self._is_fresh(entry):
            return list(entry.data)

        if entity_id in self._in_flight:
            logger.debug(f"Audit trail fetch for {entity_id} already in flight")
            return list(entry.data) if entry else []

        task = asyncio.ensure_future(self._load(entity_id, show_loading))
        self._in_flight[entity_id] = task
        return await task

    async def _load(self, entity_id: str, show_loading: bool) -> List[dict]:
        entry = self._entries.setdefault(entity_id, _CacheEntry())
        entry.loading = show_loading
        entry.error = None
        started = self._clock()

        try:
            data = await self._fetcher(entity_id)
        except Exception as e:
            # previous data stays visible and fetched_at is left as it was, so the entry expires on its original schedule
            entry.error = str(e) or "Failed to load audit trail"
            logger.error(f"Error fetching audit trail for {entity_id}: {entry.error}")
            return list(entry.data)
        else:
            # invalidate() may have dropped the entry while the fetch was in flight
            entry = self._entries.setdefault(entity_id, entry)
            entry.data = list(data or [])
            entry.fetched_at = started
            logger.info(f"Fetched {len(entry.data)} audit entries for {entity_id}")
            return list(entry.data)
        finally:
            entry.loading = False
            self._in_flight.pop(entity_id, None)

    # --- Refresh ---

    def _refresh_key(self, entity_id: str):
        return ("audit-refresh", entity_id)

    def debounced_refresh(self, entity_id: str, delay: float = 0.5, show_loading: bool = False):
        """Coalesce a burst of refresh requests into one forced fetch after ``delay`` seconds of quiet"""
        key = self._refresh_key(entity_id)
        self._refresh_keys.add(key)

        def fire():
            if entity_id in self._in_flight:
                logger.debug(f"Audit refresh for {entity_id} re-queued behind in-flight fetch")
                self._scheduler.call_later(key, delay, fire)
                return None
            self._refresh_keys.discard(key)
            return self.fetch_audit_trail(entity_id, force_refresh=True, show_loading=show_loading)

        self._scheduler.call_later(key, delay, fire)

    def refresh_pending(self, entity_id: str) -> bool:
        return self._scheduler.pending(self._refresh_key(entity_id))

    async def immediate_refresh(self, entity_id: str) -> List[dict]:
        """Cancel any pending debounce, wait out an in-flight fetch, then force a fresh fetch"""
        key = self._refresh_key(entity_id)
        self._scheduler.cancel(key)
        self._refresh_keys.discard(key)

        while entity_id in self._in_flight:
            await asyncio.wait([self._in_flight[entity_id]])

        return await self.fetch_audit_trail(entity_id, force_refresh=True, show_loading=True)

    def invalidate(self, entity_id: str):
        self._entries.pop(entity_id, None)
        key = self._refresh_key(entity_id)
        self._scheduler.cancel(key)
        self._refresh_keys.discard(key)

    def cleanup(self):
        """Cancel pending refresh timers and in-flight fetches"""
        for key in list(self._refresh_keys):
            self._scheduler.cancel(key)
        self._refresh_keys.clear()

        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()
