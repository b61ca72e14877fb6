import pytest

from conftest import WALLET, FakeOracle, make_token
from riskradar.core.analyze import ScamDetectionEngine
from riskradar.core.models import RiskLevel
from riskradar.core.wallet import scan_wallet
from riskradar.settings import Settings


def holdings():
    return [
        make_token(address="0x" + "01" * 20, symbol="USDC", name="USD Coin"),
        make_token(address="0x" + "02" * 20, symbol="ETHREWARD",
                   name="Visit website to claim your $ETH reward", verified=False, value_usd=0),
        make_token(address="0x" + "03" * 20, symbol="BAD", name="Broken"),
    ]


@pytest.mark.asyncio
async def test_failed_token_becomes_high_risk_placeholder(coordinator, settings):
    engine = ScamDetectionEngine(oracle=FakeOracle(fail_symbols={"BAD"}))
    report = await scan_wallet(WALLET.upper().replace("0X", "0x"), holdings(), engine, coordinator, settings=settings)

    assert report.wallet_address == WALLET
    assert [v.symbol for v in report.verdicts] == ["USDC", "ETHREWARD", "BAD"]
    bad = report.verdicts[2]
    assert bad.failed
    assert bad.score == 90
    assert bad.reasons == ("Analysis failed",)

    assert report.failed_count == 1
    assert report.high_risk_count == 1
    assert report.medium_risk_count == 1
    assert report.low_risk_count == 1
    assert report.risk_level is RiskLevel.HIGH
    assert [v.symbol for v in report.flagged] == ["ETHREWARD", "BAD"]


@pytest.mark.asyncio
async def test_report_to_dict(coordinator, settings, engine):
    report = await scan_wallet(WALLET, holdings()[:2], engine, coordinator, settings=settings)
    data = report.to_dict()
    assert data["walletAddress"] == WALLET
    assert data["totalTokens"] == 2
    assert data["highRiskCount"] + data["mediumRiskCount"] + data["lowRiskCount"] == 2
    assert len(data["results"]) == 2
    assert [r["symbol"] for r in data["flaggedTokens"]] == ["ETHREWARD"]


@pytest.mark.asyncio
async def test_verdicts_are_cached_per_token(coordinator, settings):
    oracle = FakeOracle()
    engine = ScamDetectionEngine(oracle=oracle)
    tokens = holdings()[:2]

    await scan_wallet(WALLET, tokens, engine, coordinator, settings=settings)
    await scan_wallet(WALLET, tokens, engine, coordinator, settings=settings)
    assert oracle.calls == ["USDC", "ETHREWARD"]

    await scan_wallet(WALLET, tokens, engine, coordinator, settings=settings, force_refresh=True)
    assert len(oracle.calls) == 4


@pytest.mark.asyncio
async def test_analysis_limit_truncates(coordinator, oracle):
    engine = ScamDetectionEngine(oracle=oracle)
    tokens = [make_token(address="0x" + f"{i:040x}", symbol=f"T{i}") for i in range(8)]
    report = await scan_wallet(WALLET, tokens, engine, coordinator,
                               settings=Settings(batch_delay=0, batch_size=3, analysis_limit=5))
    assert len(report.verdicts) == 5
    assert [v.symbol for v in report.verdicts] == ["T0", "T1", "T2", "T3", "T4"]


@pytest.mark.asyncio
async def test_empty_wallet(coordinator, settings, engine):
    report = await scan_wallet(WALLET, [], engine, coordinator, settings=settings)
    assert report.verdicts == ()
    assert report.risk_level is RiskLevel.LOW


@pytest.mark.asyncio
@pytest.mark.parametrize("wallet", ["", "0x123", "0x" + "zz" * 20, "0xabcd...ef"])
async def test_invalid_wallet_rejected(coordinator, settings, engine, wallet):
    with pytest.raises(ValueError):
        await scan_wallet(wallet, holdings(), engine, coordinator, settings=settings)
