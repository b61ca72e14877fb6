# cli.py
import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from riskradar.core.analyze import build_engine
from riskradar.core.models import RiskLevel, RiskVerdict, TokenRecord
from riskradar.errors import RiskRadarError
from riskradar.settings import Settings, configure_logging
from riskradar.utils.resilience import get_coordinator

logger = logging.getLogger("riskradar.cli")


def print_verdict(verdict: RiskVerdict) -> None:
    print(f"🔹 Token: {verdict.symbol or '?'}  Address: {verdict.token_address or '?'}")

    features = verdict.evidence_of("features")
    if features is not None:
        f = features.features
        print("✅ Verified contract." if f.contract_verified else "🚨 Contract not verified.")
        if f.has_url_in_name:
            print("🚨 URL / claim-bait pattern in name!")
        if f.symbol_weird_chars:
            print("🚨 Special characters in symbol!")
        if f.liquidity_usd > 0:
            print(f"🔹 ~USD liquidity ≈ ${f.liquidity_usd:,.0f}")
        if f.age_days > 0:
            print(f"📅 Pair age ≈ {f.age_days:.1f} days")

    sim = verdict.evidence_of("simulation")
    if sim is not None:
        s = sim.simulation
        if s.can_sell is True:
            print(f"✅ Sell simulation OK (impact ≈ {s.price_impact_pct:.2f}%, slippage ≈ {s.slippage_pct:.2f}%)")
        elif s.can_sell is False:
            print(f"🚨 Sell blocked: {s.revert_reason or 'unknown reason'}")
        else:
            print(f"❓ Sell simulation inconclusive: {s.revert_reason or 'no data'}")

    err = verdict.evidence_of("error")
    if err is not None:
        print(f"❌ Analysis failed: {err.message}")

    print("📝 Reasons: " + ", ".join(verdict.reasons))
    print(f"🧮 Final Risk Score: {verdict.score}/100 (confidence {verdict.confidence_pct}%)")
    level = verdict.risk_level
    print("❗ HIGH RISK" if level is RiskLevel.HIGH
          else "⚠️  MEDIUM RISK" if level is RiskLevel.MEDIUM
          else "✅ LOW RISK")


async def run(args: argparse.Namespace, settings: Settings) -> RiskVerdict:
    coordinator = get_coordinator(settings)
    engine = build_engine(settings, coordinator, chain_key=args.chain)
    token = TokenRecord(
        address=args.address,
        symbol=args.symbol,
        name=args.name,
        decimals=args.decimals,
        verified=args.verified,
        value_usd=args.value_usd,
    )
    return await engine.analyze_token(token, args.wallet)


def main(argv=None) -> int:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    p = argparse.ArgumentParser(description="Wallet Risk Radar - single token check")
    p.add_argument("--chain", default="eth", choices=["eth", "bsc"], help="Chain for the router simulation (eth|bsc)")
    p.add_argument("--address", required=True, help="ERC-20 contract address")
    p.add_argument("--symbol", required=True, help="Token symbol as reported by the wallet provider")
    p.add_argument("--name", default="", help="Token name")
    p.add_argument("--decimals", type=int, default=18)
    p.add_argument("--verified", action="store_true", help="Contract source is verified")
    p.add_argument("--value-usd", type=float, default=0.0, help="Holding value in USD (0 = no price data)")
    p.add_argument("--wallet", default=None, help="Wallet the token was found in")
    p.add_argument("--json", action="store_true", help="Print JSON only")
    args = p.parse_args(argv)
    logger.debug("[CLI] args=%s", vars(args))

    try:
        verdict = asyncio.run(run(args, settings))
    except (RiskRadarError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(verdict.to_dict(), indent=2, default=str))
    else:
        print_verdict(verdict)
    return 0


if __name__ == "__main__":
    sys.exit(main())
