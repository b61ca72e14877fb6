"""
Shared fixtures: a controllable clock and isolated resilience stores per test.
"""
import pytest

from riskradar.core.analyze import ScamDetectionEngine
from riskradar.core.models import SimulationVerdict, TokenRecord
from riskradar.settings import Settings
from riskradar.utils.cache import ResultCache
from riskradar.utils.ratelimit import CircuitBreaker, RateLimiter
from riskradar.utils.resilience import ResilienceCoordinator

WALLET = "0x" + "ab" * 20


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOracle:
    """Sell simulation double: fixed verdict, optional per-symbol failure."""

    def __init__(self, can_sell=True, fail_symbols=()):
        self.can_sell = can_sell
        self.fail_symbols = set(fail_symbols)
        self.calls = []

    async def simulate(self, token, features=None):
        self.calls.append(token.symbol)
        if token.symbol in self.fail_symbols:
            raise RuntimeError(f"simulation exploded for {token.symbol}")
        return SimulationVerdict(
            can_sell=self.can_sell,
            revert_reason=None if self.can_sell else "TRANSFER_FROM_FAILED",
            price_impact_pct=5.0,
            slippage_pct=3.0,
            gas_used=120000,
        )


def make_token(**overrides) -> TokenRecord:
    data = dict(
        address="0x" + "11" * 20,
        symbol="GOOD",
        name="Good Token",
        decimals=18,
        verified=True,
        value_usd=120.0,
    )
    data.update(overrides)
    return TokenRecord(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResultCache(default_ttl=60, sweep_interval=300, stale_grace=3600, clock=clock)


@pytest.fixture
def limiter(clock):
    return RateLimiter(window_seconds=900, max_requests=100, clock=clock)


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(threshold=5, reset_timeout=300, clock=clock)


@pytest.fixture
def coordinator(cache, limiter, breaker, clock):
    return ResilienceCoordinator(cache, limiter, breaker, clock=clock)


@pytest.fixture
def settings():
    return Settings(batch_delay=0.0)


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def engine(oracle):
    return ScamDetectionEngine(oracle=oracle)
