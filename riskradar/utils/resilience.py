# riskradar/utils/resilience.py
# Purpose: One "call with protection" primitive for every external lookup:
#   fresh cache -> rate limit / breaker gate -> work() -> cache + health,
#   with stale-cache fallback on rejection or failure, plus sequential batching.
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import (
    Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar,
)

from riskradar.errors import ServiceUnavailableError
from riskradar.settings import Settings
from riskradar.utils.cache import ResultCache
from riskradar.utils.ratelimit import CircuitBreaker, RateLimiter, ServiceHealth

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)

METRICS_MAX_AGE = 24 * 60 * 60.0


@dataclass
class ServiceMetrics:
    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    average_response_time: float = 0.0
    error_rate: float = 0.0
    last_reset: float = field(default_factory=time.time)

    def observe(self, elapsed: float) -> None:
        self.total_requests += 1
        n = self.total_requests
        self.average_response_time = (self.average_response_time * (n - 1) + elapsed) / n

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BatchOutcome(Generic[T]):
    item: Any
    index: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ResilienceCoordinator:
    """
    Wraps external calls with caching, fixed-window rate limiting, a circuit
    breaker and stale-cache fallback. The stores are injected so tests can build
    isolated instances; the process-wide one lives in get_coordinator().

    Two concurrent calls for the same key can both miss the cache and both run
    work(). Pass dedupe_inflight=True to make later callers await the call
    already in flight instead.
    """

    def __init__(
        self,
        cache: ResultCache,
        limiter: RateLimiter,
        breaker: CircuitBreaker,
        default_ttl: Optional[float] = None,
        dedupe_inflight: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.limiter = limiter
        self.breaker = breaker
        self.default_ttl = cache.default_ttl if default_ttl is None else float(default_ttl)
        self.dedupe_inflight = dedupe_inflight
        self._clock = clock
        self._metrics: Dict[str, ServiceMetrics] = {}
        self._inflight: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResilienceCoordinator":
        cache = ResultCache(
            default_ttl=settings.default_ttl,
            sweep_interval=settings.sweep_interval,
            stale_grace=settings.stale_grace,
        )
        limiter = RateLimiter(settings.rate_limit_window, settings.max_requests_per_window)
        breaker = CircuitBreaker(settings.breaker_threshold, settings.breaker_reset_timeout)
        return cls(cache, limiter, breaker, dedupe_inflight=settings.dedupe_inflight)

    # ---------- core primitive ----------

    def can_execute(self, key: str) -> bool:
        # breaker first: a rejected call must not burn a rate-limit slot
        if not self.breaker.allow(key):
            return False
        return self.limiter.try_acquire(key)

    async def execute_with_caching(
        self,
        key: str,
        work: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
        force_refresh: bool = False,
    ) -> T:
        start = time.perf_counter()

        if not force_refresh and self.cache.is_fresh(key):
            self._record_cache(key, hit=True, elapsed=time.perf_counter() - start)
            logger.debug("[RESILIENCE] cache hit %s", key)
            return self.cache.get(key)

        if self.dedupe_inflight:
            task = self._inflight.get(key)
            if task is None:
                # own task: a cancelled caller must not cancel the shared call
                task = asyncio.ensure_future(self._execute(key, work, ttl, start))
                self._inflight[key] = task
                task.add_done_callback(lambda t, k=key: self._forget_inflight(k, t))
            else:
                logger.debug("[RESILIENCE] joining in-flight call %s", key)
            return await asyncio.shield(task)

        return await self._execute(key, work, ttl, start)

    def _forget_inflight(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # every caller may have gone away; mark the error retrieved so the loop does not warn
            task.exception()

    async def _execute(
        self,
        key: str,
        work: Callable[[], Awaitable[T]],
        ttl: Optional[float],
        start: float,
    ) -> T:
        self._record_cache(key, hit=False, elapsed=None)
        if not self.can_execute(key):
            self._metrics_for(key).observe(time.perf_counter() - start)
            stale = self.cache.get_stale(key)
            if stale is not None:
                logger.warning("[RESILIENCE] %s rate limited or unhealthy, returning stale cache", key)
                return stale
            raise ServiceUnavailableError(key)

        try:
            result = await work()
        except Exception as e:
            self._record_failure(key, e, time.perf_counter() - start)
            stale = self.cache.get_stale(key)
            if stale is not None:
                logger.warning("[RESILIENCE] %s failed (%s), returning stale cache", key, e)
                return stale
            raise

        self.cache.set(key, result, self.default_ttl if ttl is None else ttl)
        self._record_success(key, time.perf_counter() - start)
        return result

    # ---------- batching ----------

    async def execute_batch_settled(
        self,
        items: Sequence[T],
        processor: Callable[[T, int], Awaitable[R]],
        *,
        batch_size: int = 5,
        concurrency: Optional[int] = None,
        delay_between_batches: float = 1.0,
        cache_key_fn: Optional[Callable[[T, int], str]] = None,
        ttl: Optional[float] = None,
        force_refresh: bool = False,
    ) -> List[BatchOutcome[R]]:
        """
        One outcome per input item, in input order. Batches run strictly one after
        another; within a batch every item is dispatched at once unless `concurrency`
        caps it lower.
        """
        key_fn = cache_key_fn or (lambda _item, index: f"batch_{index}")
        batch_size = max(1, int(batch_size))
        semaphore = asyncio.Semaphore(max(1, int(concurrency or batch_size)))
        outcomes: List[BatchOutcome[R]] = []

        async def run_one(item: T, index: int) -> R:
            async with semaphore:
                return await self.execute_with_caching(
                    key_fn(item, index),
                    lambda: processor(item, index),
                    ttl=ttl,
                    force_refresh=force_refresh,
                )

        for start in range(0, len(items), batch_size):
            batch = list(items[start:start + batch_size])
            results = await asyncio.gather(
                *(run_one(item, start + offset) for offset, item in enumerate(batch)),
                return_exceptions=True,
            )
            for offset, (item, res) in enumerate(zip(batch, results)):
                if isinstance(res, asyncio.CancelledError):
                    raise res
                if isinstance(res, BaseException):
                    outcomes.append(BatchOutcome(item=item, index=start + offset, error=res))
                else:
                    outcomes.append(BatchOutcome(item=item, index=start + offset, value=res))

            if start + batch_size < len(items) and delay_between_batches > 0:
                await asyncio.sleep(delay_between_batches)

        return outcomes

    async def execute_batch(
        self,
        items: Sequence[T],
        processor: Callable[[T, int], Awaitable[R]],
        **options: Any,
    ) -> List[R]:
        """Like execute_batch_settled but failed items are logged and dropped."""
        values: List[R] = []
        for outcome in await self.execute_batch_settled(items, processor, **options):
            if outcome.ok:
                values.append(outcome.value)
            else:
                logger.error("[RESILIENCE] batch item %d failed: %s", outcome.index, outcome.error)
        return values

    # ---------- bookkeeping ----------

    def _metrics_for(self, key: str) -> ServiceMetrics:
        m = self._metrics.get(key)
        if m is None:
            m = self._metrics[key] = ServiceMetrics(last_reset=self._clock())
        return m

    def _record_cache(self, key: str, hit: bool, elapsed: Optional[float]) -> None:
        m = self._metrics_for(key)
        if hit:
            m.cache_hits += 1
            m.observe(elapsed or 0.0)
        else:
            m.cache_misses += 1

    def _record_success(self, key: str, elapsed: float) -> None:
        m = self._metrics_for(key)
        m.observe(elapsed)
        m.error_rate *= 0.9
        self.breaker.record_success(key)

    def _record_failure(self, key: str, error: BaseException, elapsed: float) -> None:
        m = self._metrics_for(key)
        m.observe(elapsed)
        m.error_rate = m.error_rate * 0.9 + 0.1
        self.breaker.record_failure(key, error)

    # ---------- introspection ----------

    def get_metrics(self, key: Optional[str] = None) -> Dict[str, dict]:
        if key is not None:
            m = self._metrics.get(key)
            return {key: m.to_dict()} if m else {}
        return {k: m.to_dict() for k, m in self._metrics.items()}

    def get_health(self, key: Optional[str] = None) -> Dict[str, dict]:
        if key is not None:
            h = self.breaker.health(key)
            return {key: h.to_dict()} if h else {}
        return {k: h.to_dict() for k, h in self.breaker.snapshot().items()}

    def get_service_health_summary(self) -> dict:
        snap: Dict[str, ServiceHealth] = self.breaker.snapshot()
        healthy = sum(1 for h in snap.values() if h.is_healthy)
        return {
            "healthy": healthy,
            "unhealthy": len(snap) - healthy,
            "total": len(snap),
            "details": {k: h.to_dict() for k, h in snap.items()},
        }

    def get_cache_stats(self) -> dict:
        total = sum(m.total_requests for m in self._metrics.values())
        hits = sum(m.cache_hits for m in self._metrics.values())
        misses = sum(m.cache_misses for m in self._metrics.values())
        return {
            "hit_rate": hits / total if total else 0.0,
            "total_requests": total,
            "cache_hits": hits,
            "cache_misses": misses,
        }

    def get_stats(self) -> dict:
        return {
            "cache": self.cache.get_stats(),
            "requests": self.get_cache_stats(),
            "health": self.get_service_health_summary(),
        }

    def reset_service(self, key: str) -> None:
        self._metrics.pop(key, None)
        self.limiter.reset(key)
        self.breaker.reset(key)

    def cleanup(self) -> None:
        now = self._clock()
        for key in [k for k, m in self._metrics.items() if now - m.last_reset > METRICS_MAX_AGE]:
            del self._metrics[key]
        self.limiter.cleanup()
        logger.debug("[RESILIENCE] cleanup completed")


_COORDINATOR: Optional[ResilienceCoordinator] = None


def get_coordinator(settings: Optional[Settings] = None) -> ResilienceCoordinator:
    """Process-wide coordinator for the entry points (api.py, cli.py, batch_cli.py)."""
    global _COORDINATOR
    if _COORDINATOR is None:
        _COORDINATOR = ResilienceCoordinator.from_settings(settings or Settings.from_env())
    return _COORDINATOR


__all__ = ["ServiceMetrics", "BatchOutcome", "ResilienceCoordinator", "get_coordinator"]
