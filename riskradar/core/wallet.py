# riskradar/core/wallet.py
# Purpose: Scan every token a wallet holds, in rate-friendly batches.
from __future__ import annotations

import logging
import time
from typing import Iterable, List, Optional

from riskradar.core.analyze import ScamDetectionEngine, failed_verdict
from riskradar.core.models import RiskVerdict, TokenRecord, WalletReport
from riskradar.settings import Settings
from riskradar.utils.addr import normalize_wallet_address
from riskradar.utils.cache import CacheKeys
from riskradar.utils.resilience import ResilienceCoordinator

logger = logging.getLogger(__name__)


async def scan_wallet(
    wallet_address: str,
    tokens: Iterable[TokenRecord],
    engine: ScamDetectionEngine,
    coordinator: ResilienceCoordinator,
    settings: Optional[Settings] = None,
    force_refresh: bool = False,
) -> WalletReport:
    """
    Analyze up to `analysis_limit` tokens. Verdicts are cached per token address.
    A token whose analysis fails gets a high-risk placeholder instead of vanishing.
    Raises ValueError for a malformed wallet address.
    """
    settings = settings or Settings()
    wallet = normalize_wallet_address(wallet_address)
    todo: List[TokenRecord] = list(tokens)[: max(0, settings.analysis_limit)]
    logger.info("[WALLET] scanning %d tokens for %s", len(todo), wallet)

    async def analyze(token: TokenRecord, _index: int) -> RiskVerdict:
        return await engine.analyze_token(token, wallet)

    outcomes = await coordinator.execute_batch_settled(
        todo,
        analyze,
        batch_size=settings.batch_size,
        concurrency=settings.concurrency,
        delay_between_batches=settings.batch_delay,
        cache_key_fn=lambda token, index: CacheKeys.scam_analysis(token.address or f"{token.symbol}_{index}"),
        ttl=settings.scam_cache_ttl,
        force_refresh=force_refresh,
    )

    verdicts: List[RiskVerdict] = []
    for outcome in outcomes:
        if outcome.ok:
            verdicts.append(outcome.value)
        else:
            logger.error("[WALLET] analysis failed for %s: %s", outcome.item.symbol or outcome.item.address, outcome.error)
            verdicts.append(failed_verdict(outcome.item, outcome.error))

    report = WalletReport(wallet_address=wallet, verdicts=tuple(verdicts), analyzed_at=time.time())
    logger.info(
        "[WALLET] done: %d high, %d medium, %d low (%d failed)",
        report.high_risk_count, report.medium_risk_count, report.low_risk_count, report.failed_count,
    )
    return report


__all__ = ["scan_wallet"]
