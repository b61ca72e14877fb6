import asyncio

import pytest

from riskradar.errors import ServiceUnavailableError
from riskradar.utils.cache import ResultCache
from riskradar.utils.ratelimit import CircuitBreaker, RateLimiter
from riskradar.utils.resilience import ResilienceCoordinator


class Work:
    """Counts invocations; returns a fresh object each time or raises."""

    def __init__(self, error=None):
        self.calls = 0
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"call": self.calls}


@pytest.mark.asyncio
async def test_second_call_within_ttl_hits_cache(coordinator):
    work = Work()
    first = await coordinator.execute_with_caching("svc", work)
    second = await coordinator.execute_with_caching("svc", work)
    assert work.calls == 1
    assert second is first

    stats = coordinator.get_cache_stats()
    assert stats["cache_hits"] == 1
    assert stats["cache_misses"] == 1
    assert stats["hit_rate"] == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_force_refresh_bypasses_cache(coordinator):
    work = Work()
    await coordinator.execute_with_caching("svc", work)
    refreshed = await coordinator.execute_with_caching("svc", work, force_refresh=True)
    assert work.calls == 2
    assert refreshed == {"call": 2}


@pytest.mark.asyncio
async def test_expired_entry_runs_work_again(coordinator, clock):
    work = Work()
    await coordinator.execute_with_caching("svc", work, ttl=10)
    clock.advance(11)
    assert await coordinator.execute_with_caching("svc", work, ttl=10) == {"call": 2}


@pytest.mark.asyncio
async def test_failure_falls_back_to_stale_value(coordinator, clock):
    ok = Work()
    cached = await coordinator.execute_with_caching("svc", ok, ttl=10)
    clock.advance(60)

    failing = Work(error=RuntimeError("upstream 502"))
    result = await coordinator.execute_with_caching("svc", failing, ttl=10)
    assert result is cached
    assert failing.calls == 1

    metrics = coordinator.get_metrics("svc")["svc"]
    assert metrics["error_rate"] == pytest.approx(0.1)
    assert coordinator.breaker.health("svc").consecutive_failures == 1


@pytest.mark.asyncio
async def test_failure_without_cache_reraises_original(coordinator):
    err = RuntimeError("upstream 502")
    with pytest.raises(RuntimeError) as exc:
        await coordinator.execute_with_caching("svc", Work(error=err))
    assert exc.value is err


@pytest.mark.asyncio
async def test_error_rate_decays_on_success(coordinator):
    with pytest.raises(RuntimeError):
        await coordinator.execute_with_caching("svc", Work(error=RuntimeError()))
    await coordinator.execute_with_caching("svc", Work())
    assert coordinator.get_metrics("svc")["svc"]["error_rate"] == pytest.approx(0.09)
    assert coordinator.breaker.health("svc").consecutive_failures == 0


@pytest.mark.asyncio
async def test_rate_limited_call_returns_stale_or_raises(cache, breaker, clock):
    limiter = RateLimiter(window_seconds=900, max_requests=1, clock=clock)
    coordinator = ResilienceCoordinator(cache, limiter, breaker, clock=clock)

    cached = await coordinator.execute_with_caching("svc", Work(), ttl=5)
    clock.advance(10)

    blocked = Work()
    assert await coordinator.execute_with_caching("svc", blocked, ttl=5) is cached
    assert blocked.calls == 0

    cache.clear()
    with pytest.raises(ServiceUnavailableError, match="Service svc is rate limited or unhealthy"):
        await coordinator.execute_with_caching("svc", blocked)
    assert blocked.calls == 0


@pytest.mark.asyncio
async def test_open_breaker_rejects_without_running_work(cache, limiter, clock):
    breaker = CircuitBreaker(threshold=2, reset_timeout=300, clock=clock)
    coordinator = ResilienceCoordinator(cache, limiter, breaker, clock=clock)
    for _ in range(2):
        with pytest.raises(RuntimeError):
            await coordinator.execute_with_caching("svc", Work(error=RuntimeError("down")))

    work = Work()
    with pytest.raises(ServiceUnavailableError):
        await coordinator.execute_with_caching("svc", work)
    assert work.calls == 0
    # rejected calls do not consume rate-limit slots
    assert limiter.window("svc").requests == 2

    summary = coordinator.get_service_health_summary()
    assert summary["unhealthy"] == 1

    clock.advance(300)
    assert await coordinator.execute_with_caching("svc", work) == {"call": 1}
    assert coordinator.get_service_health_summary()["healthy"] == 1


@pytest.mark.asyncio
async def test_concurrent_misses_both_run_by_default(coordinator):
    release = asyncio.Event()
    calls = []

    async def slow():
        calls.append(1)
        await release.wait()
        return object()

    tasks = [asyncio.create_task(coordinator.execute_with_caching("svc", slow)) for _ in range(2)]
    await asyncio.sleep(0)
    release.set()
    await asyncio.gather(*tasks)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_dedupe_inflight_shares_one_call(cache, limiter, breaker, clock):
    coordinator = ResilienceCoordinator(cache, limiter, breaker, dedupe_inflight=True, clock=clock)
    release = asyncio.Event()
    calls = []

    async def slow():
        calls.append(1)
        await release.wait()
        return object()

    tasks = [asyncio.create_task(coordinator.execute_with_caching("svc", slow)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    a, b, c = await asyncio.gather(*tasks)
    assert len(calls) == 1
    assert a is b is c


@pytest.mark.asyncio
async def test_dedupe_inflight_propagates_failure(cache, limiter, breaker, clock):
    coordinator = ResilienceCoordinator(cache, limiter, breaker, dedupe_inflight=True, clock=clock)
    release = asyncio.Event()

    async def slow_fail():
        await release.wait()
        raise RuntimeError("nope")

    tasks = [asyncio.create_task(coordinator.execute_with_caching("svc", slow_fail)) for _ in range(2)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(r, RuntimeError) for r in results)


@pytest.mark.asyncio
async def test_dedupe_owner_cancellation_does_not_cancel_joiners(cache, limiter, breaker, clock):
    coordinator = ResilienceCoordinator(cache, limiter, breaker, dedupe_inflight=True, clock=clock)
    release = asyncio.Event()
    calls = []

    async def slow():
        calls.append(1)
        await release.wait()
        return "v"

    owner = asyncio.create_task(coordinator.execute_with_caching("svc", slow))
    await asyncio.sleep(0)
    joiner = asyncio.create_task(coordinator.execute_with_caching("svc", slow))
    await asyncio.sleep(0)

    owner.cancel()
    await asyncio.sleep(0)
    release.set()

    assert await joiner == "v"
    with pytest.raises(asyncio.CancelledError):
        await owner
    assert len(calls) == 1
    # the shared call still completed and populated the cache
    assert cache.get("svc") == "v"


@pytest.mark.asyncio
async def test_batches_run_sequentially_with_bounded_concurrency(coordinator):
    active = 0
    peak = 0
    batches_seen = []

    async def processor(item, index):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        batches_seen.append((index // 3, active))
        await asyncio.sleep(0.001)
        active -= 1
        return item * 10

    values = await coordinator.execute_batch(
        list(range(7)), processor, batch_size=3, concurrency=2, delay_between_batches=0,
    )
    assert values == [0, 10, 20, 30, 40, 50, 60]
    assert peak <= 2
    # every item of batch n started before any item of batch n+1
    order = [b for b, _ in batches_seen]
    assert order == sorted(order)


@pytest.mark.asyncio
async def test_batch_drops_failures_but_settled_keeps_them(coordinator):
    async def processor(item, index):
        if item == 3:
            raise ValueError("bad item")
        return item

    values = await coordinator.execute_batch(
        [1, 2, 3, 4], processor, batch_size=2, delay_between_batches=0,
        cache_key_fn=lambda item, i: f"drop:{item}",
    )
    assert values == [1, 2, 4]

    outcomes = await coordinator.execute_batch_settled(
        [1, 2, 3, 4], processor, batch_size=2, delay_between_batches=0,
        cache_key_fn=lambda item, i: f"settled:{item}",
    )
    assert [o.ok for o in outcomes] == [True, True, False, True]
    assert [o.index for o in outcomes] == [0, 1, 2, 3]
    assert isinstance(outcomes[2].error, ValueError)
    assert outcomes[2].item == 3


@pytest.mark.asyncio
async def test_delay_only_between_batches(coordinator, monkeypatch):
    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(seconds, *args, **kwargs):
        delays.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def processor(item, index):
        return item

    await coordinator.execute_batch(list(range(7)), processor, batch_size=3, delay_between_batches=1.5)
    assert delays == [1.5, 1.5]


@pytest.mark.asyncio
async def test_batch_results_are_cached_per_key(coordinator):
    calls = []

    async def processor(item, index):
        calls.append(item)
        return item

    opts = dict(batch_size=5, delay_between_batches=0, cache_key_fn=lambda item, i: f"item:{item}")
    await coordinator.execute_batch(["a", "b"], processor, **opts)
    await coordinator.execute_batch(["a", "b", "c"], processor, **opts)
    assert calls == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_stats_reset_and_cleanup(coordinator, clock):
    await coordinator.execute_with_caching("svc", Work())
    stats = coordinator.get_stats()
    assert stats["cache"]["total"] == 1
    assert stats["requests"]["total_requests"] == 1
    assert stats["health"]["healthy"] == 1

    coordinator.reset_service("svc")
    assert coordinator.get_metrics("svc") == {}

    await coordinator.execute_with_caching("other", Work())
    clock.advance(25 * 60 * 60)
    coordinator.cleanup()
    assert coordinator.get_metrics() == {}


@pytest.mark.asyncio
async def test_whole_batch_dispatched_at_once_by_default(coordinator):
    active = 0
    peak = 0

    async def processor(item, index):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return item

    await coordinator.execute_batch(list(range(8)), processor, batch_size=4, delay_between_batches=0)
    assert peak == 4
