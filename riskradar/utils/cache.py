# riskradar/utils/cache.py
# Purpose: In-process TTL cache with lazy expiry + an owned periodic sweep task.
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60.0
SWEEP_INTERVAL = 5 * 60.0


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_expired(self, now: float) -> bool:
        # strictly after: an entry aged exactly ttl is still served
        return self.age(now) > self.ttl


class ResultCache:
    """
    Key -> value store with a TTL per entry.

    get/has treat an entry older than its TTL as absent and drop it on the spot.
    cleanup() (run by the sweeper task) removes whatever nobody reads again;
    with stale_grace > 0 it keeps expired entries around that much longer so
    callers can still fall back to them through get_stale().
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float = SWEEP_INTERVAL,
        stale_grace: float = 0.0,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl = float(default_ttl)
        self.sweep_interval = float(sweep_interval)
        self.stale_grace = max(0.0, float(stale_grace))
        self._clock = clock
        self._entries: Dict[str, CacheEntry[Any]] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else float(ttl)
        self._entries[key] = CacheEntry(data=value, timestamp=self._clock(), ttl=ttl)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry.data

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def peek(self, key: str) -> Optional[CacheEntry[Any]]:
        """Raw entry, expired or not. Never evicts."""
        return self._entries.get(key)

    def is_fresh(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def get_stale(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        return None if entry is None else entry.data

    def cleanup(self) -> int:
        now = self._clock()
        doomed = [
            k for k, e in self._entries.items()
            if e.age(now) > e.ttl + self.stale_grace
        ]
        for k in doomed:
            del self._entries[k]
        if doomed:
            logger.debug("[CACHE] sweep removed %d expired entries", len(doomed))
        return len(doomed)

    def get_stats(self) -> Dict[str, int]:
        now = self._clock()
        expired = sum(1 for e in self._entries.values() if e.is_expired(now))
        return {
            "total": len(self._entries),
            "active": len(self._entries) - expired,
            "expired": expired,
            "size": self._estimate_size(),
        }

    def _estimate_size(self) -> int:
        # rough byte estimate, good enough for /stats
        size = 0
        for key, entry in self._entries.items():
            size += len(key) * 2 + 64
            try:
                size += len(json.dumps(entry.data, default=str)) * 2
            except (TypeError, ValueError):
                size += 64
        return size

    # ---------- sweeper lifecycle ----------

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start_sweeper(self) -> None:
        if not self.sweeping:
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
            logger.info("[CACHE] sweeper started (every %.0fs)", self.sweep_interval)

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("[CACHE] sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.cleanup()
            except Exception:
                logger.exception("[CACHE] sweep failed")


def create_cache_key(kind: str, **params: Any) -> str:
    parts = "|".join(f"{k}:{params[k]}" for k in sorted(params))
    return f"{kind}:{parts}"


class CacheKeys:
    @staticmethod
    def scam_analysis(token_address: str) -> str:
        return create_cache_key("scam", address=(token_address or "").lower())

    @staticmethod
    def market_data(token_address: str) -> str:
        return create_cache_key("market", address=(token_address or "").lower())

    @staticmethod
    def simulation(chain_key: str, token_address: str) -> str:
        return create_cache_key("simulation", address=(token_address or "").lower(), chain=chain_key)


def memoize_ttl(ttl_seconds: float = 300):
    """
    Super-simple in-process TTL cache decorator for sync helpers.
    Uses (args, sorted(kwargs)) as the key.
    """
    def deco(fn: Callable):
        cache: Dict[Tuple[Any, ...], Tuple[Any, float]] = {}

        @wraps(fn)
        def wrapped(*args, **kwargs):
            key = (args, tuple(sorted(kwargs.items())))
            now = time.time()
            if key in cache:
                val, exp = cache[key]
                if now < exp:
                    return val
            val = fn(*args, **kwargs)
            cache[key] = (val, now + ttl_seconds)
            return val

        def cache_clear():
            cache.clear()

        wrapped.cache_clear = cache_clear  # type: ignore[attr-defined]
        return wrapped
    return deco


__all__ = ["CacheEntry", "ResultCache", "CacheKeys", "create_cache_key", "memoize_ttl"]
