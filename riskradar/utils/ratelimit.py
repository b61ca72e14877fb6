# riskradar/utils/ratelimit.py
# Purpose: Per-service fixed-window request caps + a timeout-reset circuit breaker.
# Both are plain in-memory stores; the resilience coordinator owns and mutates them.
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Defaults: 100 requests per 15 minutes, trip after 5 failures, cool down 5 minutes.
RATE_LIMIT_WINDOW = 15 * 60.0
MAX_REQUESTS_PER_WINDOW = 100
CIRCUIT_BREAKER_THRESHOLD = 5
CIRCUIT_BREAKER_RESET_TIME = 5 * 60.0


@dataclass
class RateLimitWindow:
    requests: int
    reset_time: float


@dataclass
class ServiceHealth:
    is_healthy: bool = True
    last_success: float = 0.0
    last_failure: float = 0.0
    consecutive_failures: int = 0
    error_details: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class RateLimiter:
    """Fixed window per service key. Over-cap requests are rejected, never queued."""

    def __init__(
        self,
        window_seconds: float = RATE_LIMIT_WINDOW,
        max_requests: int = MAX_REQUESTS_PER_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = max(0.001, float(window_seconds))
        self.max_requests = max(1, int(max_requests))
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}

    def try_acquire(self, key: str) -> bool:
        now = self._clock()
        win = self._windows.get(key)
        if win is None or now > win.reset_time:
            self._windows[key] = RateLimitWindow(requests=1, reset_time=now + self.window_seconds)
            return True
        if win.requests >= self.max_requests:
            logger.debug("[RATELIMIT] %s rejected (%d/%d in window)", key, win.requests, self.max_requests)
            return False
        win.requests += 1
        return True

    def window(self, key: str) -> Optional[RateLimitWindow]:
        return self._windows.get(key)

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def cleanup(self) -> int:
        now = self._clock()
        elapsed = [k for k, w in self._windows.items() if now > w.reset_time]
        for k in elapsed:
            del self._windows[k]
        return len(elapsed)


class CircuitBreaker:
    """
    healthy -> unhealthy after `threshold` consecutive failures.
    While unhealthy, allow() stays False until `reset_timeout` has passed since
    the last failure; then the breaker resets itself and lets calls through again.
    """

    def __init__(
        self,
        threshold: int = CIRCUIT_BREAKER_THRESHOLD,
        reset_timeout: float = CIRCUIT_BREAKER_RESET_TIME,
        clock: Callable[[], float] = time.time,
    ):
        self.threshold = max(1, int(threshold))
        self.reset_timeout = float(reset_timeout)
        self._clock = clock
        self._health: Dict[str, ServiceHealth] = {}

    def allow(self, key: str) -> bool:
        health = self._health.get(key)
        if health is None or health.is_healthy:
            return True
        if self._clock() - health.last_failure < self.reset_timeout:
            return False
        health.is_healthy = True
        health.consecutive_failures = 0
        logger.info("[BREAKER] %s cool-down elapsed, closing circuit", key)
        return True

    def record_success(self, key: str) -> ServiceHealth:
        health = self._health.setdefault(key, ServiceHealth())
        health.is_healthy = True
        health.last_success = self._clock()
        health.consecutive_failures = 0
        return health

    def record_failure(self, key: str, error: BaseException) -> ServiceHealth:
        health = self._health.setdefault(key, ServiceHealth())
        health.last_failure = self._clock()
        health.consecutive_failures += 1
        health.error_details = str(error) or type(error).__name__
        if health.consecutive_failures >= self.threshold and health.is_healthy:
            health.is_healthy = False
            logger.warning(
                "[BREAKER] circuit opened for %s after %d failures",
                key, health.consecutive_failures,
            )
        return health

    def health(self, key: str) -> Optional[ServiceHealth]:
        return self._health.get(key)

    def snapshot(self) -> Dict[str, ServiceHealth]:
        return dict(self._health)

    def reset(self, key: str) -> None:
        health = self._health.get(key)
        if health is not None:
            health.is_healthy = True
            health.consecutive_failures = 0
            health.last_failure = 0.0


__all__ = [
    "RateLimitWindow", "ServiceHealth", "RateLimiter", "CircuitBreaker",
    "RATE_LIMIT_WINDOW", "MAX_REQUESTS_PER_WINDOW",
    "CIRCUIT_BREAKER_THRESHOLD", "CIRCUIT_BREAKER_RESET_TIME",
]
