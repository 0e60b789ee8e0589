"""In-process TTL cache with single-flight computes and stale-while-revalidate."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from errors import RequestCancelled
from geo_models import BoundingBox, CacheEntry

log = logging.getLogger(__name__)


class _OwnerCancelled(Exception):
    """The compute a waiter joined was cancelled by its owner."""


@dataclass(frozen=True)
class CacheLookup:
    payload: Any
    status: str  # fresh | stale | miss
    age_s: float
    refresh: Future | None = None


def cache_key(bbox: BoundingBox, instant: datetime) -> str:
    """
    ``venues:<s>,<w>,<n>,<e>:<Y>-<M>-<D>-<H>`` with the box rounded to 4
    decimals and the instant truncated to its UTC hour.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    dt = instant.astimezone(timezone.utc)
    box = f"{bbox.south:.4f},{bbox.west:.4f},{bbox.north:.4f},{bbox.east:.4f}"
    return f"venues:{box}:{dt.year}-{dt.month}-{dt.day}-{dt.hour}"


class ResponseCache:
    """
    Keyed cache whose entries are fresh for ``fresh_ttl_s`` and then servable
    but stale for another ``stale_ttl_s``.

    At most one compute runs per key: concurrent misses wait on the same
    future, and a stale hit returns immediately while a single background
    thread recomputes the entry.
    """

    def __init__(
        self,
        fresh_ttl_s: float,
        stale_ttl_s: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fresh_ttl_s = fresh_ttl_s
        self.stale_ttl_s = stale_ttl_s
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, Future] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        return self.fetch(key, compute).payload

    def fetch(
        self,
        key: str,
        compute: Callable[[], Any],
        refresh: Callable[[], Any] | None = None,
    ) -> CacheLookup:
        """
        Serve ``key`` from cache or compute it once for all concurrent callers.

        ``refresh`` is what a stale hit runs in the background; it defaults to
        ``compute``. A waiter whose owner was cancelled does not inherit the
        cancellation: it retries, becoming the owner or joining a new compute.
        """
        while True:
            try:
                return self._fetch_once(key, compute, refresh or compute)
            except _OwnerCancelled:
                continue

    def _fetch_once(
        self,
        key: str,
        compute: Callable[[], Any],
        refresh: Callable[[], Any],
    ) -> CacheLookup:
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None and not entry.is_servable(now):
                del self._entries[key]
                entry = None

            if entry is not None and entry.is_fresh(now):
                return CacheLookup(entry.payload, "fresh", entry.age(now))

            if entry is not None:
                pending = None
                if key not in self._inflight:
                    pending = Future()
                    self._inflight[key] = pending
                lookup = CacheLookup(entry.payload, "stale", entry.age(now), pending)
                owner = False
                future = None
            else:
                lookup = None
                future = self._inflight.get(key)
                owner = future is None
                if owner:
                    future = Future()
                    self._inflight[key] = future

        if lookup is not None:
            if lookup.refresh is not None:
                self._start_refresh(key, refresh, lookup.refresh)
            return lookup

        if not owner:
            try:
                return CacheLookup(future.result(), "miss", 0.0)
            except RequestCancelled as exc:
                raise _OwnerCancelled() from exc

        try:
            payload = compute()
        except BaseException as exc:
            self._abandon(key, future)
            future.set_exception(exc)
            raise
        self._store(key, payload, future)
        future.set_result(payload)
        return CacheLookup(payload, "miss", 0.0)

    def lookup(self, key: str) -> CacheLookup | None:
        """Servable entry for ``key`` without computing anything."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or not entry.is_servable(now):
                return None
            status = "fresh" if entry.is_fresh(now) else "stale"
            return CacheLookup(entry.payload, status, entry.age(now))

    def pending(self, key: str) -> Future | None:
        with self._lock:
            return self._inflight.get(key)

    def invalidate(self, key: str) -> bool:
        """Drop one key. An in-flight compute for it will not be stored."""
        with self._lock:
            self._inflight.pop(key, None)
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._inflight.clear()
            self._entries.clear()

    def _start_refresh(self, key: str, compute: Callable[[], Any], future: Future) -> None:
        thread = threading.Thread(
            target=self._refresh,
            args=(key, compute, future),
            name=f"cache-refresh-{key}",
            daemon=True,
        )
        thread.start()

    def _refresh(self, key: str, compute: Callable[[], Any], future: Future) -> None:
        try:
            payload = compute()
        except Exception as exc:  # noqa: BLE001 - stale entry stays in place
            log.exception("Background refresh failed for %s; keeping stale entry", key)
            self._abandon(key, future)
            future.set_exception(exc)
            return
        self._store(key, payload, future)
        future.set_result(payload)
        log.debug("Refreshed cache entry %s", key)

    def _store(self, key: str, payload: Any, future: Future) -> None:
        with self._lock:
            if self._inflight.get(key) is not future:
                # Invalidated while computing.
                return
            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                computed_at=now,
                fresh_until=now + self.fresh_ttl_s,
                stale_until=now + self.fresh_ttl_s + self.stale_ttl_s,
            )
            del self._inflight[key]
            self._purge_expired(now)

    def _abandon(self, key: str, future: Future) -> None:
        with self._lock:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if not e.is_servable(now)]
        for k in expired:
            del self._entries[k]
