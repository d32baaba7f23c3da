"""
Digest helpers for call hashes and address derivation.

Call hashes are SHA-256 over the canonical call payload; addresses are
RIPEMD160(SHA256(pubkey)) and custody/token accounts hash a label instead.
"""
import hashlib

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()

def sha256_hex(data: bytes) -> str:
    """Hex digest used as the call hash."""
    return sha256(data).hex()

def ripemd160(data: bytes) -> bytes:
    """20-byte digest that becomes the bech32 address payload."""
    h = hashlib.new('ripemd160')
    h.update(data)
    return h.digest()
