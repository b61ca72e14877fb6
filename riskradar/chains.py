# riskradar/chains.py
# Purpose: Chain config (V2 routers + quote bases) and a cached web3 factory (Web3 v7).
# Injects POA middleware for BSC.
from __future__ import annotations

import logging
import os

from web3 import Web3
from web3.middleware.proof_of_authority import ExtraDataToPOAMiddleware

from riskradar.utils.cache import memoize_ttl

logger = logging.getLogger(__name__)

RPC_TIMEOUT = 30

CHAINS = {
    "eth": {
        "name": "eth",
        "chainid": 1,
        "rpc_env": "WEB3_PROVIDER_ETH",
        "router_v2": Web3.to_checksum_address("0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"),  # Uniswap V2
        "bases": [
            {"symbol": "WETH", "address": Web3.to_checksum_address("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"), "decimals": 18},
            {"symbol": "USDC", "address": Web3.to_checksum_address("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"), "decimals": 6},
            {"symbol": "USDT", "address": Web3.to_checksum_address("0xdAC17F958D2ee523a2206206994597C13D831ec7"), "decimals": 6},
        ],
    },
    "bsc": {
        "name": "bsc",
        "chainid": 56,
        "rpc_env": "WEB3_PROVIDER_BSC",
        "default_rpc": "https://bsc-dataseed.binance.org",
        "router_v2": Web3.to_checksum_address("0x10ED43C718714eb63d5aA57B78B54704E256024E"),  # Pancake V2
        "bases": [
            {"symbol": "WBNB", "address": Web3.to_checksum_address("0xBB4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"), "decimals": 18},
            {"symbol": "USDT", "address": Web3.to_checksum_address("0x55d398326f99059fF775485246999027B3197955"), "decimals": 18},
        ],
    },
}


def rpc_url_for(chain_key: str) -> str:
    if chain_key not in CHAINS:
        raise ValueError(f"Unknown chain: {chain_key}")
    cfg = CHAINS[chain_key]
    rpc = os.getenv(cfg["rpc_env"]) or (os.getenv("WEB3_PROVIDER") if chain_key == "eth" else "")
    rpc = (rpc or "").strip().rstrip("\r")
    if not rpc or rpc in {"https://", "http://"}:
        rpc = cfg.get("default_rpc", "")
        if not rpc:
            raise ValueError(f"Missing/invalid RPC URL for {chain_key}. Set {cfg['rpc_env']} in .env")
        logger.info("[CHAINS] using default RPC for %s: %s", chain_key, rpc)
    return rpc


@memoize_ttl(600)
def get_w3_for_chain(chain_key: str) -> Web3:
    rpc = rpc_url_for(chain_key)
    w3 = Web3(Web3.HTTPProvider(rpc, request_kwargs={"timeout": RPC_TIMEOUT}))

    # PoA-like chains (BSC) carry extra data in block headers
    if CHAINS[chain_key]["chainid"] in (56, 97):
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        logger.debug("[CHAINS] POA middleware injected for %s", chain_key)

    logger.debug("[CHAINS] HTTPProvider ready for %s", chain_key)
    return w3


__all__ = ["CHAINS", "rpc_url_for", "get_w3_for_chain"]
