from unittest.mock import MagicMock

import pytest
from web3.exceptions import ContractLogicError

from conftest import make_token
from riskradar.core.simulation import RouterQuoteOracle, StubSimulationOracle, verdict_from_probe

TOKEN = make_token(address="0x" + "11" * 20, symbol="MEME")


def fake_w3(*quotes):
    """web3 double whose router getAmountsOut(...).call() yields `quotes` in order."""
    w3 = MagicMock()
    call = w3.eth.contract.return_value.functions.getAmountsOut.return_value.call
    call.side_effect = list(quotes)
    return w3


def test_probe_without_route_is_inconclusive():
    verdict = verdict_from_probe({"buy_ok": None, "sell_ok": None, "notes": ["no V2 pair with a known base"]})
    assert verdict.can_sell is None
    assert not verdict.is_conclusive
    assert verdict.revert_reason == "no V2 pair with a known base"


def test_probe_with_rejected_sell_blocks():
    verdict = verdict_from_probe({"buy_ok": True, "sell_ok": False, "notes": ["sell quote reverted: x"]})
    assert verdict.can_sell is False
    assert verdict.price_impact_pct == 100.0
    assert verdict.revert_reason == "sell quote reverted: x"


def test_probe_round_trip_loss_becomes_impact():
    verdict = verdict_from_probe({"buy_ok": True, "sell_ok": True, "round_trip_loss_pct": 2.6, "notes": []})
    assert verdict.can_sell is True
    assert verdict.price_impact_pct == 2.6
    assert verdict.slippage_pct == pytest.approx(2.0)
    assert verdict.gas_used == 120000


@pytest.mark.asyncio
async def test_stub_oracle_is_fixed():
    verdict = await StubSimulationOracle().simulate(TOKEN)
    assert verdict.can_sell is True
    assert (verdict.price_impact_pct, verdict.slippage_pct, verdict.gas_used) == (5.0, 3.0, 120000)


@pytest.mark.asyncio
async def test_router_round_trip_sellable(coordinator):
    buy_in = 10 ** 16  # 0.01 WETH
    w3 = fake_w3([buy_in, 5000], [5000, buy_in * 9 // 10])
    oracle = RouterQuoteOracle(coordinator, chain_key="eth", w3=w3)

    verdict = await oracle.simulate(TOKEN)
    assert verdict.can_sell is True
    assert verdict.price_impact_pct == pytest.approx(10.0)
    assert verdict.slippage_pct == pytest.approx(9.4)

    # second call served from cache
    await oracle.simulate(TOKEN)
    assert w3.eth.contract.return_value.functions.getAmountsOut.return_value.call.call_count == 2


@pytest.mark.asyncio
async def test_router_sell_revert_is_honeypot(coordinator):
    w3 = fake_w3([10 ** 16, 5000], ContractLogicError("execution reverted: TRANSFER_FAILED"))
    verdict = await RouterQuoteOracle(coordinator, w3=w3).simulate(TOKEN)
    assert verdict.can_sell is False
    assert "sell quote reverted" in verdict.revert_reason


@pytest.mark.asyncio
async def test_rpc_failure_is_inconclusive_and_counted(coordinator):
    w3 = fake_w3(ConnectionError("rpc unreachable"))
    verdict = await RouterQuoteOracle(coordinator, w3=w3).simulate(TOKEN)
    assert verdict.can_sell is None
    assert "rpc unreachable" in verdict.revert_reason

    health = coordinator.get_health()
    assert len(health) == 1
    assert next(iter(health.values()))["consecutive_failures"] == 1


@pytest.mark.asyncio
async def test_invalid_token_address_is_inconclusive(coordinator):
    w3 = fake_w3()
    verdict = await RouterQuoteOracle(coordinator, w3=w3).simulate(make_token(address="not-an-address"))
    assert verdict.can_sell is None


def test_unknown_chain_rejected(coordinator):
    with pytest.raises(ValueError):
        RouterQuoteOracle(coordinator, chain_key="solana")
