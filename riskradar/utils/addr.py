# riskradar/utils/addr.py
import re

from web3 import Web3

_HEX40_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_evm_address(raw: str) -> str:
    """Strictly validate & checksum an EVM address."""
    s = (raw or "").strip()
    if "..." in s:
        raise ValueError("Ellipses ('...') are not allowed. Provide the full 42-char 0x address.")
    if not s.startswith("0x") or len(s) != 42:
        raise ValueError("Invalid address: must be 0x-prefixed and 42 characters long (0x + 40 hex).")
    if not _HEX40_RE.match(s):
        raise ValueError("Invalid address: not a valid hex string.")
    return Web3.to_checksum_address(s)


def normalize_wallet_address(raw: str) -> str:
    """Wallet addresses are reported lower-cased so cache keys and logs line up."""
    return normalize_evm_address(raw).lower()
