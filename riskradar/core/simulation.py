# riskradar/core/simulation.py
# Purpose: Sell-simulation oracles. The aggregator only sees SimulationVerdict, so
# the stub and the router probe are interchangeable.
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

from riskradar.chains import CHAINS, get_w3_for_chain
from riskradar.core.models import FeatureVector, SimulationVerdict, TokenRecord
from riskradar.errors import RiskRadarError, SimulationError
from riskradar.utils.cache import CacheKeys
from riskradar.utils.honeypot import ROUND_TRIP_FEES_PCT, V2_SWAP_GAS, probe_round_trip
from riskradar.utils.resilience import ResilienceCoordinator

logger = logging.getLogger(__name__)

SIMULATION_TTL = 10 * 60.0


class SimulationOracle(Protocol):
    async def simulate(self, token: TokenRecord, features: Optional[FeatureVector] = None) -> SimulationVerdict:
        ...


class StubSimulationOracle:
    """Always reports a sellable token with fixed 5% impact / 3% slippage."""

    async def simulate(self, token: TokenRecord, features: Optional[FeatureVector] = None) -> SimulationVerdict:
        return SimulationVerdict(
            can_sell=True,
            revert_reason=None,
            price_impact_pct=5.0,
            slippage_pct=3.0,
            gas_used=120000,
        )


def verdict_from_probe(probe: Dict[str, Any]) -> SimulationVerdict:
    notes = "; ".join(probe.get("notes") or []) or None
    if probe.get("buy_ok") is not True:
        return SimulationVerdict.inconclusive(notes or "no quote route")
    if probe.get("sell_ok") is False:
        return SimulationVerdict(
            can_sell=False,
            revert_reason=notes or "sell quote rejected",
            price_impact_pct=100.0,
            slippage_pct=100.0,
            gas_used=0,
        )
    loss = float(probe.get("round_trip_loss_pct") or 0.0)
    return SimulationVerdict(
        can_sell=True,
        revert_reason=None,
        price_impact_pct=round(loss, 4),
        slippage_pct=round(max(0.0, loss - ROUND_TRIP_FEES_PCT), 4),
        gas_used=V2_SWAP_GAS,
    )


class RouterQuoteOracle:
    """
    Read-only V2 router round trip (Uniswap on eth, Pancake on bsc).

    The blocking web3 calls run in a worker thread and go through the resilience
    coordinator. Anything that stops us from reaching a verdict (RPC down, breaker
    open, no pair) comes back as an inconclusive verdict instead of can_sell=True.
    """

    def __init__(self, coordinator: ResilienceCoordinator, chain_key: str = "eth", w3=None, ttl: float = SIMULATION_TTL):
        if chain_key not in CHAINS:
            raise ValueError(f"Unknown chain: {chain_key}")
        self.coordinator = coordinator
        self.chain_key = chain_key
        self.cfg = CHAINS[chain_key]
        self.ttl = ttl
        self._w3 = w3

    def _probe(self, address: str) -> Dict[str, Any]:
        w3 = self._w3 or get_w3_for_chain(self.chain_key)
        try:
            return probe_round_trip(w3, self.cfg["router_v2"], address, self.cfg["bases"])
        except ValueError:
            raise
        except Exception as e:
            raise SimulationError(f"router probe failed on {self.chain_key}: {e}") from e

    async def simulate(self, token: TokenRecord, features: Optional[FeatureVector] = None) -> SimulationVerdict:
        key = CacheKeys.simulation(self.chain_key, token.address)

        async def work() -> Dict[str, Any]:
            return await asyncio.to_thread(self._probe, token.address)

        try:
            probe = await self.coordinator.execute_with_caching(key, work, ttl=self.ttl)
        except (RiskRadarError, ValueError) as e:
            logger.warning("[SIMULATION] %s inconclusive: %s", token.address, e)
            return SimulationVerdict.inconclusive(str(e))
        verdict = verdict_from_probe(probe)
        logger.debug("[SIMULATION] %s -> can_sell=%s", token.address, verdict.can_sell)
        return verdict


__all__ = ["SimulationOracle", "StubSimulationOracle", "RouterQuoteOracle", "verdict_from_probe"]
