# riskradar/core/rules.py
# Purpose: Deterministic, additive rule pass over a FeatureVector.
# The score is the raw sum (can exceed 100); the aggregator caps it.
from __future__ import annotations

from typing import List, Optional

from riskradar.core.models import FeatureVector, RuleVerdict, Signal

LONG_NAME_CHARS = 30
CRITICAL_TAX_PCT = 50.0
ABNORMAL_TAX_PCT = 10.0
TOP_HOLDER_PCT = 70.0


def evaluate_rules(features: FeatureVector) -> RuleVerdict:
    """Return the rule score, its human-readable reasons and an optional escalation signal."""
    score = 0
    reasons: List[str] = []
    signal: Optional[Signal] = None

    # --- Contract / naming
    if not features.contract_verified:
        score += 15
        reasons.append("Unverified contract")
    if features.has_url_in_name:
        score += 25
        reasons.append("URL pattern in name")
    if features.name_length > LONG_NAME_CHARS:
        score += 15
        reasons.append("Unusually long name")
    if features.symbol_weird_chars:
        score += 20
        reasons.append("Special characters in symbol")

    # --- Liquidity
    if features.recent_liquidity_removed:
        score += 40
        reasons.append("Recent liquidity removed")
        signal = signal or Signal.ESCALATE

    # --- Tax (percent)
    if features.tax_rate_pct > CRITICAL_TAX_PCT:
        score += 45
        reasons.append("Critical tax rate >50%")
        signal = Signal.ESCALATE
    elif features.tax_rate_pct > ABNORMAL_TAX_PCT:
        score += 20
        reasons.append("Abnormal tax rate >10%")

    # --- Supply / holders
    if features.infinite_supply:
        score += 30
        reasons.append("Infinite supply")
    if features.holder_top1_pct >= TOP_HOLDER_PCT:
        score += 25
        reasons.append("Top holder concentration >=70%")

    # --- External signal
    if features.external_listings == 0:
        score += 10
        reasons.append("No external listings")

    details = {
        "contractVerified": features.contract_verified,
        "nameLength": features.name_length,
        "symbolWeirdChars": features.symbol_weird_chars,
        "hasURLInName": features.has_url_in_name,
        "recentLiquidityRemoved": features.recent_liquidity_removed,
        "taxRatePct": features.tax_rate_pct,
        "infiniteSupply": features.infinite_supply,
        "holderTop1Pct": features.holder_top1_pct,
        "externalListings": features.external_listings,
    }
    return RuleVerdict(score=score, reasons=tuple(reasons), signal=signal, details=details)


__all__ = ["evaluate_rules"]
