# batch_cli.py
import argparse
import asyncio
import csv
import json
import logging
import sys
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from riskradar.core.analyze import build_engine
from riskradar.core.models import RiskVerdict, TokenRecord, WalletReport
from riskradar.core.wallet import scan_wallet
from riskradar.settings import Settings, configure_logging
from riskradar.utils.resilience import get_coordinator

logger = logging.getLogger("riskradar.batch")

FIELDNAMES = [
    "address", "symbol", "score", "risk_level", "confidence_pct", "can_sell",
    "liquidity_usd", "external_listings", "reasons", "error",
]


def load_tokens(path: str) -> List[TokenRecord]:
    """Accepts a JSON list of token objects or {"tokens": [...]} as written by the balance providers."""
    p = Path(path)
    if not p.exists():
        raise ValueError(f"Input file not found: {path}")
    with p.open() as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("tokens") or []
    if not isinstance(data, list):
        raise ValueError("Input must be a JSON list of tokens or an object with a 'tokens' list")
    tokens = [TokenRecord.from_dict(t) for t in data if isinstance(t, dict)]
    logger.info("[BATCH] loaded %d tokens from %s", len(tokens), path)
    return tokens


def flatten_result(verdict: RiskVerdict) -> dict:
    features = verdict.evidence_of("features")
    sim = verdict.evidence_of("simulation")
    err = verdict.evidence_of("error")
    return {
        "address": verdict.token_address,
        "symbol": verdict.symbol,
        "score": verdict.score,
        "risk_level": verdict.risk_level.value,
        "confidence_pct": verdict.confidence_pct,
        "can_sell": "" if sim is None or sim.simulation.can_sell is None else sim.simulation.can_sell,
        "liquidity_usd": f"{features.features.liquidity_usd:.0f}" if features else "",
        "external_listings": features.features.external_listings if features else "",
        "reasons": ";".join(verdict.reasons),
        "error": err.message if err else "",
    }


async def run(wallet: str, tokens: List[TokenRecord], settings: Settings, force_refresh: bool) -> WalletReport:
    coordinator = get_coordinator(settings)
    engine = build_engine(settings, coordinator)
    coordinator.cache.start_sweeper()
    try:
        return await scan_wallet(wallet, tokens, engine, coordinator, settings=settings, force_refresh=force_refresh)
    finally:
        await coordinator.cache.stop_sweeper()


def main(argv=None) -> int:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    ap = argparse.ArgumentParser(description="Wallet Risk Radar - batch wallet scan")
    ap.add_argument("--wallet", required=True, help="0x wallet address the tokens belong to")
    ap.add_argument("--infile", required=True, help="JSON file with the wallet's token records")
    ap.add_argument("--out-csv", default="wallet_scan.csv", help="CSV output path")
    ap.add_argument("--out-json", default="wallet_scan.json", help="JSON output path")
    ap.add_argument("--force-refresh", action="store_true", help="Ignore cached verdicts")
    args = ap.parse_args(argv)

    try:
        tokens = load_tokens(args.infile)
        report = asyncio.run(run(args.wallet, tokens, settings, args.force_refresh))
    except (ValueError, json.JSONDecodeError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    with open(args.out_csv, "w", newline="") as f:
        w = csv.DictWriter(f, fieldnames=FIELDNAMES)
        w.writeheader()
        w.writerows(flatten_result(v) for v in report.verdicts)
    with open(args.out_json, "w") as f:
        json.dump(report.to_dict(), f, indent=2, default=str)

    print(f"🧮 {len(report.verdicts)} tokens: {report.high_risk_count} high, "
          f"{report.medium_risk_count} medium, {report.low_risk_count} low "
          f"({report.failed_count} failed)")
    print("✅ Done. CSV →", args.out_csv, " JSON →", args.out_json)
    return 0


if __name__ == "__main__":
    sys.exit(main())
