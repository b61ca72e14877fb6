# riskradar/core/models.py
# Purpose: Typed records passed between the pipeline stages.
from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional, Tuple, Union

HIGH_RISK_THRESHOLD = 75
MEDIUM_RISK_THRESHOLD = 40


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Signal(str, enum.Enum):
    IMMEDIATE = "IMMEDIATE"  # reserved for hard stops (e.g. known-scam registry hit)
    ESCALATE = "ESCALATE"


def risk_level_for(score: int) -> RiskLevel:
    if score >= HIGH_RISK_THRESHOLD:
        return RiskLevel.HIGH
    if score >= MEDIUM_RISK_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class TokenRecord:
    address: str
    symbol: str
    name: str = ""
    decimals: int = 18
    verified: bool = False
    value_usd: float = 0.0
    balance: str = "0"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TokenRecord":
        """Accepts provider-style camelCase (valueUSD) as well as snake_case keys."""
        value = raw.get("value_usd", raw.get("valueUSD", 0.0))
        decimals = raw.get("decimals")
        return cls(
            address=str(raw.get("address") or ""),
            symbol=str(raw.get("symbol") or ""),
            name=str(raw.get("name") or ""),
            decimals=int(decimals) if decimals is not None else 18,
            verified=raw.get("verified") is True,
            value_usd=_as_float(value),
            balance=str(raw.get("balance") if raw.get("balance") is not None else "0"),
        )


@dataclass(frozen=True)
class MarketSnapshot:
    liquidity_usd: float
    age_days: float
    volume_24h: float
    buys_24h: int
    sells_24h: int
    pair_address: str = ""
    dex_id: str = ""


@dataclass(frozen=True)
class FeatureVector:
    contract_verified: bool
    name_length: int
    symbol_weird_chars: bool
    has_url_in_name: bool
    holder_top1_pct: float = 0.0
    holder_top5_pct: float = 0.0
    total_holders: int = 0
    liquidity_usd: float = 0.0
    recent_liquidity_removed: bool = False
    age_days: float = 0.0
    tax_rate_pct: float = 0.0
    dynamic_tax: bool = False
    tx_volume_24h: float = 0.0
    buy_sell_ratio: float = 1.0
    large_transfer_count: int = 0
    infinite_supply: bool = False
    supply_mint_events: int = 0
    external_listings: int = 0
    community_reports: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RuleVerdict:
    score: int
    reasons: Tuple[str, ...]
    signal: Optional[Signal]
    details: Mapping[str, Any]


@dataclass(frozen=True)
class SimulationVerdict:
    # None = the simulation could not decide
    can_sell: Optional[bool]
    revert_reason: Optional[str]
    price_impact_pct: float
    slippage_pct: float
    gas_used: int

    @property
    def is_conclusive(self) -> bool:
        return self.can_sell is not None

    @classmethod
    def inconclusive(cls, reason: str) -> "SimulationVerdict":
        return cls(can_sell=None, revert_reason=reason, price_impact_pct=0.0, slippage_pct=0.0, gas_used=0)


@dataclass(frozen=True)
class Contribution:
    feature: str
    importance: float


@dataclass(frozen=True)
class ProbabilityVerdict:
    probability: float
    confidence: float
    contributions: Tuple[Contribution, ...]


# ---------- evidence (tagged union) ----------

@dataclass(frozen=True)
class FeatureEvidence:
    features: FeatureVector
    kind: Literal["features"] = "features"


@dataclass(frozen=True)
class SimulationEvidence:
    simulation: SimulationVerdict
    kind: Literal["simulation"] = "simulation"


@dataclass(frozen=True)
class RuleEvidence:
    details: Mapping[str, Any]
    signal: Optional[Signal] = None
    kind: Literal["rules"] = "rules"


@dataclass(frozen=True)
class ProbabilityEvidence:
    probability: float
    confidence: float
    contributions: Tuple[Contribution, ...]
    kind: Literal["probability"] = "probability"


@dataclass(frozen=True)
class ErrorEvidence:
    message: str
    error_type: str = "Exception"
    kind: Literal["error"] = "error"


Evidence = Union[FeatureEvidence, SimulationEvidence, RuleEvidence, ProbabilityEvidence, ErrorEvidence]


def _jsonable(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Mapping):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class RiskVerdict:
    token_address: str
    symbol: str
    score: int
    confidence_pct: int
    reasons: Tuple[str, ...]
    evidence: Tuple[Evidence, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ValueError(f"score out of range: {self.score}")

    @property
    def risk_level(self) -> RiskLevel:
        return risk_level_for(self.score)

    @property
    def failed(self) -> bool:
        return self.evidence_of("error") is not None

    def evidence_of(self, kind: str) -> Optional[Evidence]:
        for ev in self.evidence:
            if ev.kind == kind:
                return ev
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokenAddress": self.token_address,
            "symbol": self.symbol,
            "riskLevel": self.risk_level.value,
            "score": self.score,
            "confidencePct": self.confidence_pct,
            "reasons": list(self.reasons),
            "evidence": {ev.kind: _jsonable(asdict(ev)) for ev in self.evidence},
        }


@dataclass(frozen=True)
class WalletReport:
    wallet_address: str
    verdicts: Tuple[RiskVerdict, ...]
    analyzed_at: float

    def _count(self, level: RiskLevel) -> int:
        return sum(1 for v in self.verdicts if v.risk_level is level)

    @property
    def high_risk_count(self) -> int:
        return self._count(RiskLevel.HIGH)

    @property
    def medium_risk_count(self) -> int:
        return self._count(RiskLevel.MEDIUM)

    @property
    def low_risk_count(self) -> int:
        return self._count(RiskLevel.LOW)

    @property
    def failed_count(self) -> int:
        return sum(1 for v in self.verdicts if v.failed)

    @property
    def flagged(self) -> Tuple[RiskVerdict, ...]:
        return tuple(v for v in self.verdicts if v.risk_level is not RiskLevel.LOW)

    @property
    def risk_level(self) -> RiskLevel:
        if self.high_risk_count:
            return RiskLevel.HIGH
        if self.medium_risk_count:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "walletAddress": self.wallet_address,
            "riskLevel": self.risk_level.value,
            "totalTokens": len(self.verdicts),
            "highRiskCount": self.high_risk_count,
            "mediumRiskCount": self.medium_risk_count,
            "lowRiskCount": self.low_risk_count,
            "failedCount": self.failed_count,
            "flaggedTokens": [v.to_dict() for v in self.flagged],
            "results": [v.to_dict() for v in self.verdicts],
            "analysisTimestamp": self.analyzed_at,
        }
