import bech32 # type: ignore
from .hash import sha256, ripemd160
from ..config.params import BECH32_PREFIX
from typing import Tuple, Optional

def _encode(prefix: str, h20: bytes) -> str:
    five_bit_r = bech32.convertbits(h20, 8, 5)
    if five_bit_r is None:
        raise ValueError("Error converting to bech32 words")
    return bech32.bech32_encode(prefix, five_bit_r)

def address_from_pubkey(pub_bytes: bytes, prefix: str = BECH32_PREFIX) -> str:
    """Creates Bech32 address from public key."""
    return _encode(prefix, ripemd160(sha256(pub_bytes)))

def contract_address(label: str, prefix: str = BECH32_PREFIX) -> str:
    """
    Deterministic address for a ledger-owned account (custody, token).

    Nobody holds a key for it: the hash preimage is a label, not a public key.
    """
    return _encode(prefix, ripemd160(sha256(f"stakevault:{label}".encode("utf-8"))))

def decode_address(addr: str) -> Tuple[str, bytes]:
    """Decodes Bech32 address to (prefix, h20_bytes)."""
    hrp, data = bech32.bech32_decode(addr)
    if hrp is None or data is None:
        raise ValueError("Invalid bech32 address")

    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("Error converting from bech32 words")

    return hrp, bytes(decoded)

def is_valid_address(addr: str, expected_prefix: Optional[str] = None) -> bool:
    try:
        hrp, _ = decode_address(addr)
        if expected_prefix and hrp != expected_prefix:
            return False
        return True
    except ValueError:
        return False

# Canonical "absent" owner of a zeroed record
ZERO_ADDRESS = _encode(BECH32_PREFIX, b"\x00" * 20)
