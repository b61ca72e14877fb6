# riskradar/core/model.py
# Purpose: Fixed linear heuristic turning the rule score plus a few independent
# signals into a 0..1 scam probability. Not trained; no dataset needed.
from __future__ import annotations

from riskradar.core.models import Contribution, FeatureVector, ProbabilityVerdict

RULES_WEIGHT = 0.6
URL_BOOST = 0.2
HOLDER_BOOST = 0.15
TAX_BOOST = 0.1
VERIFIED_PENALTY = -0.1


class ScamProbabilityModel:
    def predict(self, features: FeatureVector, rules_score: float = 0) -> ProbabilityVerdict:
        url = URL_BOOST if features.has_url_in_name else 0.0
        holder = HOLDER_BOOST if features.holder_top1_pct >= 70 else 0.0
        tax = TAX_BOOST if features.tax_rate_pct > 10 else 0.0
        verified = VERIFIED_PENALTY if features.contract_verified else 0.0

        base = (rules_score or 0) / 100.0
        probability = min(1.0, max(0.0, base + url + holder + tax + verified))
        confidence = min(95.0, max(50.0, 70.0 + (5.0 if features.external_listings > 0 else -5.0)))

        # rules always, then only the boosts that fired
        contributions = (Contribution("rules", RULES_WEIGHT),) + tuple(
            Contribution(name, weight)
            for name, weight in (
                ("urlInName", url),
                ("holderTop1", holder),
                ("taxRate", tax),
                ("verification", verified),
            )
            if weight
        )
        return ProbabilityVerdict(probability=probability, confidence=confidence, contributions=contributions)


__all__ = ["ScamProbabilityModel"]
