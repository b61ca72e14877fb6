# riskradar/settings.py
# Purpose: Runtime knobs read from the environment (.env is loaded by the entry points).
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

_FALSY = {"0", "false", "no", "off", ""}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return float(default)
    try:
        return float(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in _FALSY


@dataclass(frozen=True)
class Settings:
    # rate limiting (fixed window per service key)
    rate_limit_window: float = 15 * 60.0
    max_requests_per_window: int = 100
    # circuit breaker
    breaker_threshold: int = 5
    breaker_reset_timeout: float = 5 * 60.0
    # cache
    default_ttl: float = 5 * 60.0
    sweep_interval: float = 5 * 60.0
    stale_grace: float = 60 * 60.0
    scam_cache_ttl: float = 10 * 60.0
    market_cache_ttl: float = 5 * 60.0
    # batching
    batch_size: int = 5
    # 0 = every item of a batch at once
    concurrency: int = 0
    batch_delay: float = 1.0
    analysis_limit: int = 50
    dedupe_inflight: bool = False
    # optional collaborators
    market_data: bool = False
    honeypot_probe: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            rate_limit_window=_env_float("RISKRADAR_RATE_LIMIT_WINDOW", 15 * 60.0),
            max_requests_per_window=_env_int("RISKRADAR_MAX_REQUESTS", 100),
            breaker_threshold=_env_int("RISKRADAR_BREAKER_THRESHOLD", 5),
            breaker_reset_timeout=_env_float("RISKRADAR_BREAKER_RESET", 5 * 60.0),
            default_ttl=_env_float("RISKRADAR_DEFAULT_TTL", 5 * 60.0),
            sweep_interval=_env_float("RISKRADAR_SWEEP_INTERVAL", 5 * 60.0),
            stale_grace=_env_float("RISKRADAR_STALE_GRACE", 60 * 60.0),
            scam_cache_ttl=_env_float("RISKRADAR_SCAM_TTL", 10 * 60.0),
            market_cache_ttl=_env_float("RISKRADAR_MARKET_TTL", 5 * 60.0),
            batch_size=_env_int("RISKRADAR_BATCH_SIZE", 5),
            concurrency=_env_int("RISKRADAR_CONCURRENCY", 0),
            batch_delay=_env_float("RISKRADAR_BATCH_DELAY", 1.0),
            analysis_limit=_env_int("RISKRADAR_ANALYSIS_LIMIT", 50),
            dedupe_inflight=env_flag("RISKRADAR_DEDUPE_INFLIGHT"),
            market_data=env_flag("RISKRADAR_MARKET_DATA"),
            honeypot_probe=env_flag("HONEYPOT_PROBE"),
            log_level=(os.getenv("RISKRADAR_LOG_LEVEL") or "INFO").strip().upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # web3/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)


__all__ = ["Settings", "env_flag", "configure_logging"]
