# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict

# Global Constants
DENOM = "stv"
DECIMALS = 18
BECH32_PREFIX = "stv"

# Cooling-off period between unstake and redeem
LOCK_DURATION_SEC = 24 * 60 * 60

# uint256 bound for balances, allowances and deposit amounts
MAX_UINT256 = 2**256 - 1
# uint64 bound for timestamps
MAX_TIMESTAMP = 2**64 - 1

class VaultConfig:
    def __init__(self,
                 network_id: str,
                 chain_id: str,
                 genesis_premine: int,
                 token_symbol: str = DENOM,
                 token_decimals: int = DECIMALS,
                 bech32_prefix: str = BECH32_PREFIX,
                 version: int = 1,
                 # Time-lock params
                 lock_duration_sec: int = LOCK_DURATION_SEC,
                 # Arithmetic bounds
                 max_amount: int = MAX_UINT256,
                 max_timestamp: int = MAX_TIMESTAMP,
                 # Receipt store
                 max_receipts: int = 10000,
                 # Devnet specific deterministic keys (hex strings)
                 faucet_priv_key: str = None):
        self.network_id = network_id
        self.chain_id = chain_id
        self.genesis_premine = genesis_premine
        self.token_symbol = token_symbol
        self.token_decimals = token_decimals
        self.bech32_prefix = bech32_prefix
        self.version = version
        self.lock_duration_sec = lock_duration_sec
        self.max_amount = max_amount
        self.max_timestamp = max_timestamp
        self.max_receipts = max_receipts
        self.faucet_priv_key = faucet_priv_key

NETWORKS: Dict[str, VaultConfig] = {
    "devnet": VaultConfig(
        network_id="devnet",
        chain_id="stv-devnet-1",
        genesis_premine=1_000_000_000 * 10**DECIMALS,
        # Deterministic Faucet Key for Devnet
        faucet_priv_key="4f3edf982522b4e51b7e8b5f2f9c4d1d7a9e5f8c2b6d4e1a3c5b7d9e0f1a2b3c"
    ),
    "testnet": VaultConfig(
        network_id="testnet",
        chain_id="stv-testnet-1",
        genesis_premine=100_000_000 * 10**DECIMALS,
    ),
    "mainnet": VaultConfig(
        network_id="mainnet",
        chain_id="stv-mainnet-1",
        genesis_premine=0,
        max_receipts=100000,
    )
}

def get_network(name: str) -> VaultConfig:
    if name not in NETWORKS:
        raise ValueError(f"Unknown network '{name}' (expected one of {sorted(NETWORKS)})")
    return NETWORKS[name]

CURRENT_NETWORK = get_network(os.environ.get("STAKEVAULT_NETWORK", "devnet"))
