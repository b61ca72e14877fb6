# riskradar/utils/honeypot.py
from typing import Dict, Any, List
from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

ROUTER_ABI = [{
    "name": "getAmountsOut",
    "type": "function",
    "stateMutability": "view",
    "inputs": [{"name": "amountIn", "type": "uint256"}, {"name": "path", "type": "address[]"}],
    "outputs": [{"name": "amounts", "type": "uint256[]"}],
}]

# two V2 hops at 0.3% each
ROUND_TRIP_FEES_PCT = 0.6
V2_SWAP_GAS = 120000


def _quote(router, amount_in: int, path: List[str]) -> int:
    amounts = router.functions.getAmountsOut(amount_in, path).call()
    if len(amounts) != len(path):
        return 0
    return int(amounts[-1])


def probe_round_trip(w3: Web3, router_addr: str, token: str, bases: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Read-only round trip against a V2 router:
      - buy quote: small amount of a base token -> token
      - sell quote: what we'd get back selling those tokens -> base
    The first base with a working buy quote is used. Returns a dict:
      {"base": sym|None, "buy_ok": bool|None, "sell_ok": bool|None,
       "round_trip_loss_pct": float|None, "notes": [...]}
    This is not a transfer simulation; a sell that the router refuses to quote,
    or quotes at zero, is the signal we can get without sending a transaction.
    Only contract-level failures are recorded here; RPC transport errors propagate
    so the caller can count them.
    """
    out: Dict[str, Any] = {"base": None, "buy_ok": None, "sell_ok": None,
                           "round_trip_loss_pct": None, "notes": []}
    router = w3.eth.contract(address=Web3.to_checksum_address(router_addr), abi=ROUTER_ABI)
    tok = Web3.to_checksum_address(token)

    for b in bases:
        base = Web3.to_checksum_address(b["address"])
        if base == tok:
            out["notes"].append(f"skip base={b['symbol']} because base==token")
            continue
        # 0.01 of the base in raw units
        buy_in = max(1, 10 ** max(0, int(b.get("decimals", 18)) - 2))
        try:
            bought = _quote(router, buy_in, [base, tok])
        except (ContractLogicError, BadFunctionCallOutput) as e:
            out["notes"].append(f"buy quote failed for {b['symbol']}: {e}")
            continue
        if bought <= 0:
            out["notes"].append(f"zero buy quote for {b['symbol']}")
            continue

        out["base"] = b["symbol"]
        out["buy_ok"] = True
        try:
            back = _quote(router, bought, [tok, base])
        except (ContractLogicError, BadFunctionCallOutput) as e:
            out["sell_ok"] = False
            out["notes"].append(f"sell quote reverted: {e}")
            return out
        out["sell_ok"] = back > 0
        if back > 0:
            out["round_trip_loss_pct"] = max(0.0, (1.0 - back / buy_in) * 100.0)
        else:
            out["notes"].append("zero sell quote")
        return out

    out["notes"].append("no V2 pair with a known base")
    return out

