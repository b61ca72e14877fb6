# riskradar/core/score.py
# Purpose: Blend rules + probability + simulation into the final verdict.
from __future__ import annotations

import math
from typing import List

from riskradar.core.models import (
    FeatureEvidence,
    FeatureVector,
    ProbabilityEvidence,
    ProbabilityVerdict,
    RiskVerdict,
    RuleEvidence,
    RuleVerdict,
    Signal,
    SimulationEvidence,
    SimulationVerdict,
    TokenRecord,
)

TRUSTED_SYMBOLS = frozenset({"USDC", "USDT", "WBTC", "WETH", "DAI", "LINK", "UNI", "AAVE", "COMP"})
TRUST_DAMPING = 60
HONEYPOT_FLOOR = 90
ESCALATION_FLOOR = 75
RULES_WEIGHT = 0.6
PROBABILITY_WEIGHT = 0.4


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def is_trusted(symbol: str) -> bool:
    return (symbol or "").upper() in TRUSTED_SYMBOLS


def combine_score(
    *,
    rules_score: float,
    probability: float,
    trusted: bool = False,
    can_sell: bool | None = True,
    signal: Signal | None = None,
) -> int:
    """Return the final 0..100 score. Overrides apply in a fixed order: trust, honeypot, escalation."""
    # rule scores are unbounded; cap the blend before damping so trusted tokens always lose the full 60
    score = min(100, max(0, _round_half_up(RULES_WEIGHT * rules_score + PROBABILITY_WEIGHT * (probability * 100))))

    if trusted:
        score = max(0, score - TRUST_DAMPING)

    # an inconclusive simulation (None) is treated like a blocked sell
    if can_sell is not True:
        score = max(score, HONEYPOT_FLOOR)

    if signal is Signal.ESCALATE:
        score = max(score, ESCALATION_FLOOR)

    return max(0, min(100, score))


def aggregate(
    token: TokenRecord,
    features: FeatureVector,
    rules: RuleVerdict,
    prediction: ProbabilityVerdict,
    simulation: SimulationVerdict,
) -> RiskVerdict:
    score = combine_score(
        rules_score=rules.score,
        probability=prediction.probability,
        trusted=is_trusted(token.symbol),
        can_sell=simulation.can_sell,
        signal=rules.signal,
    )

    reasons: List[str] = list(rules.reasons)
    if simulation.can_sell is False:
        reasons.append("Sell simulation failed")
    elif simulation.can_sell is None:
        reasons.append("Sell simulation inconclusive")
    if not reasons:
        reasons = ["Analyzed"]

    confidence = min(95, max(50, _round_half_up(prediction.confidence)))

    return RiskVerdict(
        token_address=token.address,
        symbol=token.symbol,
        score=score,
        confidence_pct=confidence,
        reasons=tuple(reasons),
        evidence=(
            FeatureEvidence(features=features),
            SimulationEvidence(simulation=simulation),
            RuleEvidence(details=dict(rules.details), signal=rules.signal),
            ProbabilityEvidence(
                probability=prediction.probability,
                confidence=prediction.confidence,
                contributions=prediction.contributions,
            ),
        ),
    )


__all__ = ["aggregate", "combine_score", "is_trusted", "TRUSTED_SYMBOLS"]
