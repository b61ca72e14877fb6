# riskradar/utils/market.py
# Purpose: DexScreener pair lookup -> MarketSnapshot (liquidity, pair age, 24h flow).
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from riskradar.core.models import MarketSnapshot
from riskradar.errors import ProviderError
from riskradar.utils.cache import CacheKeys
from riskradar.utils.http import http_get_json
from riskradar.utils.resilience import ResilienceCoordinator

logger = logging.getLogger(__name__)

DEXSCREENER_BASE = "https://api.dexscreener.com/latest/dex"
SERVICE = "dexscreener"
MARKET_TTL = 5 * 60.0


def _addr_eq(a: Optional[str], b: str) -> bool:
    return (a or "").lower() == b.lower()


def find_best_pair(pairs: List[Dict[str, Any]], token_address: str) -> Optional[Dict[str, Any]]:
    """Deepest pair where the token is the base token; any pair containing it otherwise."""
    valid = [
        p for p in pairs or []
        if _addr_eq((p.get("baseToken") or {}).get("address"), token_address)
        or _addr_eq((p.get("quoteToken") or {}).get("address"), token_address)
    ]
    if not valid:
        return None
    base_side = [p for p in valid if _addr_eq((p.get("baseToken") or {}).get("address"), token_address)]
    candidates = base_side or valid
    return max(candidates, key=lambda p: float((p.get("liquidity") or {}).get("usd") or 0.0))


def snapshot_from_pair(pair: Dict[str, Any], now: Optional[float] = None) -> MarketSnapshot:
    now = time.time() if now is None else now
    created_ms = pair.get("pairCreatedAt")
    age_days = 0.0
    if created_ms:
        try:
            age_days = max(0.0, (now - float(created_ms) / 1000.0) / 86400.0)
        except (TypeError, ValueError):
            age_days = 0.0
    h24 = ((pair.get("txns") or {}).get("h24") or {})
    return MarketSnapshot(
        liquidity_usd=float((pair.get("liquidity") or {}).get("usd") or 0.0),
        age_days=age_days,
        volume_24h=float((pair.get("volume") or {}).get("h24") or 0.0),
        buys_24h=int(h24.get("buys") or 0),
        sells_24h=int(h24.get("sells") or 0),
        pair_address=str(pair.get("pairAddress") or ""),
        dex_id=str(pair.get("dexId") or ""),
    )


class DexScreenerClient:
    def __init__(
        self,
        coordinator: ResilienceCoordinator,
        ttl: float = MARKET_TTL,
        base_url: str = DEXSCREENER_BASE,
        session: Optional[requests.Session] = None,
    ):
        self.coordinator = coordinator
        self.ttl = ttl
        self.base_url = base_url.rstrip("/")
        self.session = session

    def _search(self, address: str) -> Optional[MarketSnapshot]:
        data = http_get_json(SERVICE, f"{self.base_url}/search", {"q": address}, session=self.session)
        try:
            pair = find_best_pair((data or {}).get("pairs") or [], address)
            if pair is None:
                logger.debug("[MARKET] no pairs for %s", address)
                return None
            return snapshot_from_pair(pair)
        except (AttributeError, TypeError, ValueError) as e:
            raise ProviderError(SERVICE, f"malformed payload: {e}") from e

    async def fetch_snapshot(self, address: str, force_refresh: bool = False) -> Optional[MarketSnapshot]:
        """Raises ProviderError / ServiceUnavailableError; None when the token has no pair."""

        async def work() -> Optional[MarketSnapshot]:
            return await asyncio.to_thread(self._search, address)

        return await self.coordinator.execute_with_caching(
            CacheKeys.market_data(address), work, ttl=self.ttl, force_refresh=force_refresh,
        )


__all__ = ["DexScreenerClient", "find_best_pair", "snapshot_from_pair"]
