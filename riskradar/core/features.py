# riskradar/core/features.py
# Purpose: TokenRecord -> FeatureVector. Pure, never raises.
#
# Holder distribution, liquidity events, tax behaviour and mint history need
# on-chain collaborators that are not wired yet. Those fields stay at zero/False,
# which means "unknown", not "safe". A MarketSnapshot (DexScreener) can fill the
# liquidity / age / volume fields without changing the vector's shape.
from __future__ import annotations

import re
from typing import Optional

from riskradar.core.models import FeatureVector, MarketSnapshot, TokenRecord

# URLs, bare domains and the "visit website to claim" airdrop bait seen on spam tokens
URL_OR_BAIT_RE = re.compile(
    r"https?://|www\.|\.(com|org|net|io|app|xyz|finance|tech|crypto)\b"
    r"|visit\s+(our\s+|the\s+)?website|claim\s+(your\s+)?rewards?|\bto\s+claim\b"
    r"|\bairdrop\b|drop\s*\w+\s*\.org",
    re.IGNORECASE,
)
WEIRD_SYMBOL_RE = re.compile(r"[^a-zA-Z0-9\s]")


def has_url_or_bait(name: str) -> bool:
    return bool(URL_OR_BAIT_RE.search(name or ""))


def has_weird_chars(symbol: str) -> bool:
    return bool(WEIRD_SYMBOL_RE.search(symbol or ""))


def _buy_sell_ratio(market: MarketSnapshot) -> float:
    if market.sells_24h <= 0:
        return float(market.buys_24h) if market.buys_24h > 0 else 1.0
    return market.buys_24h / market.sells_24h


def extract_features(token: TokenRecord, market: Optional[MarketSnapshot] = None) -> FeatureVector:
    name = (token.name or "").lower()
    symbol = token.symbol or ""
    listed = 1 if (token.value_usd or 0) > 0 else 0

    liquidity_usd = 0.0
    age_days = 0.0
    volume = 0.0
    ratio = 1.0
    if market is not None:
        liquidity_usd = max(0.0, float(market.liquidity_usd or 0.0))
        age_days = max(0.0, float(market.age_days or 0.0))
        volume = max(0.0, float(market.volume_24h or 0.0))
        ratio = _buy_sell_ratio(market)
        # a DEX pair with real liquidity counts as an external listing
        if liquidity_usd > 0:
            listed = max(listed, 1)

    return FeatureVector(
        contract_verified=token.verified is True,
        name_length=len(name),
        symbol_weird_chars=has_weird_chars(symbol),
        has_url_in_name=has_url_or_bait(name),
        liquidity_usd=liquidity_usd,
        age_days=age_days,
        tx_volume_24h=volume,
        buy_sell_ratio=ratio,
        external_listings=listed,
    )


__all__ = ["extract_features", "has_url_or_bait", "has_weird_chars", "URL_OR_BAIT_RE"]
