# riskradar/core/analyze.py
# Purpose: One token in, one RiskVerdict out.
#   market data (optional) -> features -> simulation -> rules -> probability -> aggregate
from __future__ import annotations

import logging
from typing import Optional

from riskradar.core.features import extract_features
from riskradar.core.model import ScamProbabilityModel
from riskradar.core.models import ErrorEvidence, MarketSnapshot, RiskVerdict, TokenRecord
from riskradar.core.rules import evaluate_rules
from riskradar.core.score import aggregate
from riskradar.core.simulation import RouterQuoteOracle, SimulationOracle, StubSimulationOracle
from riskradar.errors import RiskRadarError
from riskradar.settings import Settings
from riskradar.utils.market import DexScreenerClient
from riskradar.utils.resilience import ResilienceCoordinator

logger = logging.getLogger(__name__)

FAILED_SCORE = 90
FAILED_CONFIDENCE = 50


def failed_verdict(token: TokenRecord, error: BaseException) -> RiskVerdict:
    """Conservative high-risk placeholder so a token whose scan failed stays visible."""
    return RiskVerdict(
        token_address=token.address,
        symbol=token.symbol,
        score=FAILED_SCORE,
        confidence_pct=FAILED_CONFIDENCE,
        reasons=("Analysis failed",),
        evidence=(ErrorEvidence(message=str(error) or type(error).__name__, error_type=type(error).__name__),),
    )


class ScamDetectionEngine:
    def __init__(
        self,
        oracle: Optional[SimulationOracle] = None,
        model: Optional[ScamProbabilityModel] = None,
        market: Optional[DexScreenerClient] = None,
    ):
        self.oracle = oracle or StubSimulationOracle()
        self.model = model or ScamProbabilityModel()
        self.market = market

    async def _market_snapshot(self, token: TokenRecord) -> Optional[MarketSnapshot]:
        if self.market is None or not token.address:
            return None
        try:
            return await self.market.fetch_snapshot(token.address)
        except RiskRadarError as e:
            # missing optional data is "unknown", not a failed analysis
            logger.info("[ENGINE] market data unavailable for %s: %s", token.symbol or token.address, e)
            return None

    async def analyze_token(self, token: TokenRecord, wallet_address: Optional[str] = None) -> RiskVerdict:
        logger.debug("[ENGINE] analyze start symbol=%s addr=%s wallet=%s", token.symbol, token.address, wallet_address)

        # 1) Optional market enrichment
        market = await self._market_snapshot(token)

        # 2) Features (pure)
        features = extract_features(token, market)

        # 3) Sell simulation (may raise; caller decides what a failed item looks like)
        simulation = await self.oracle.simulate(token, features)

        # 4) Rules + probability
        rules = evaluate_rules(features)
        prediction = self.model.predict(features, rules_score=rules.score)

        # 5) Aggregate
        verdict = aggregate(token, features, rules, prediction, simulation)
        logger.info(
            "[ENGINE] %s score=%d level=%s reasons=%s",
            token.symbol or token.address, verdict.score, verdict.risk_level.value, ", ".join(verdict.reasons),
        )
        return verdict


def build_engine(settings: Settings, coordinator: ResilienceCoordinator, chain_key: str = "eth") -> ScamDetectionEngine:
    """Wire the optional collaborators switched on in settings (HONEYPOT_PROBE, RISKRADAR_MARKET_DATA)."""
    oracle: SimulationOracle = StubSimulationOracle()
    if settings.honeypot_probe:
        oracle = RouterQuoteOracle(coordinator, chain_key=chain_key)
        logger.info("[ENGINE] router quote simulation enabled on %s", chain_key)
    market = None
    if settings.market_data:
        market = DexScreenerClient(coordinator, ttl=settings.market_cache_ttl)
        logger.info("[ENGINE] DexScreener market data enabled")
    return ScamDetectionEngine(oracle=oracle, market=market)


__all__ = ["ScamDetectionEngine", "failed_verdict", "build_engine"]
