import argparse
import os
import sys
import json
import logging
from ...protocol.crypto.keys import generate_private_key, public_key_from_private
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.config.params import CURRENT_NETWORK
from ..core.vault import Vault
from ..rpc.api import start_rpc_server

logger = logging.getLogger(__name__)

DB_FILENAME = "vault.db"

def cmd_init(args):
    """Initialize node: faucet key, genesis allocation, data dir."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    faucet_path = os.path.join(data_dir, "faucet_key.hex")
    if os.path.exists(faucet_path):
        print(f"Node already initialized at {data_dir}")
        return

    if CURRENT_NETWORK.faucet_priv_key:
        # Deterministic key for Devnet
        priv = bytes.fromhex(CURRENT_NETWORK.faucet_priv_key)
        print("Using DETERMINISTIC Devnet Faucet Key.")
    else:
        priv = generate_private_key()

    with open(faucet_path, "w") as f:
        f.write(priv.hex())
    os.chmod(faucet_path, 0o600)

    pub = public_key_from_private(priv)
    addr = address_from_pubkey(pub, prefix=CURRENT_NETWORK.bech32_prefix)
    print(f"Generated FAUCET key (with premine).")
    print(f"Address: {addr}")
    print(f"SAVE THIS KEY TO SPEND TOKENS!")

    genesis = {
        "network_id": CURRENT_NETWORK.network_id,
        "chain_id": CURRENT_NETWORK.chain_id,
        "alloc": {addr: str(CURRENT_NETWORK.genesis_premine)} if CURRENT_NETWORK.genesis_premine else {},
    }
    with open(os.path.join(data_dir, "genesis.json"), "w") as f:
        json.dump(genesis, f, indent=2)
    print(f"Genesis written to {os.path.join(data_dir, 'genesis.json')}")

def cmd_start(args):
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    db_path = os.path.join(args.datadir, DB_FILENAME)
    if not os.path.isdir(args.datadir):
        print(f"Data dir {args.datadir} does not exist. Run 'init' first.")
        sys.exit(1)

    vault = Vault(db_path)
    logger.info(f"Starting StakeVault node ({CURRENT_NETWORK.network_id}) on {args.host}:{args.port}")
    try:
        start_rpc_server(vault, host=args.host, port=args.port)
    finally:
        vault.close()

def main():
    parser = argparse.ArgumentParser(prog="stakevault-node", description="StakeVault Node")
    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    p_init = subparsers.add_parser("init", help="Initialize data directory")
    p_init.add_argument("--datadir", default="./data", help="Data directory")

    p_start = subparsers.add_parser("start", help="Start node RPC")
    p_start.add_argument("--datadir", default="./data", help="Data directory")
    p_start.add_argument("--host", default="0.0.0.0", help="Bind host")
    p_start.add_argument("--port", type=int, default=8000, help="Bind port")
    p_start.add_argument("--log-level", default="info", help="Logging level")

    args = parser.parse_args()

    if args.command == "init":
        cmd_init(args)
    elif args.command == "start":
        cmd_start(args)
    else:
        parser.print_help()

if __name__ == "__main__":
    main()
