# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import os
from decimal import Decimal, Inexact, InvalidOperation, localcontext
import requests
from .keystore import KeyStore
from ..protocol.types.call import Call
from ..protocol.types.common import CallType
from ..protocol.config.params import CURRENT_NETWORK, DECIMALS, DENOM

DEFAULT_NODE = "http://localhost:8000"
# Enough significant digits for any uint256 amount with 18 decimals
AMOUNT_PRECISION = 100

def get_node_url(args):
    return args.node or os.environ.get("STAKEVAULT_NODE", DEFAULT_NODE)

def parse_amount(text: str) -> int:
    """'1.5' -> 1.5 * 10**DECIMALS minimal units; 'max' -> uint256 max."""
    if text == "max":
        return CURRENT_NETWORK.max_amount
    # Default 28-digit context would round uint256-sized values
    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        ctx.traps[Inexact] = True
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {text}")
        if not value.is_finite():
            raise ValueError(f"Invalid amount: {text}")
        try:
            units = value.scaleb(DECIMALS)
        except Inexact:
            raise ValueError(f"Amount {text} has too many digits")
        if units != units.to_integral_value():
            raise ValueError(f"Amount {text} has more than {DECIMALS} decimals")
        if units > CURRENT_NETWORK.max_amount:
            raise ValueError(f"Amount {text} exceeds the maximum")
    return int(units)

def format_amount(units: int) -> str:
    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        return f"{Decimal(units).scaleb(-DECIMALS).normalize():f} {DENOM}"

def _get(url: str, path: str) -> dict:
    try:
        resp = requests.get(f"{url}{path}", timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()

# --- Keys Commands ---
def cmd_keys_add(args):
    ks = KeyStore()
    try:
        key = ks.create_key(args.name)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' created.")
    print(f"Address: {key['address']}")
    print(f"Pubkey:  {key['public_key']}")
    print("Important: Private key saved unencrypted. Do not share!")

def cmd_keys_import(args):
    ks = KeyStore()
    try:
        key = ks.import_key(args.name, args.private_key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' imported.")
    print(f"Address: {key['address']}")

def cmd_keys_list(args):
    keys = KeyStore().list_keys()
    if not keys:
        print("No keys found.")
        return

    print(f"{'Name':<15} {'Address':<45}")
    print("-" * 60)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<45}")

def cmd_keys_show(args):
    key = KeyStore().get_key(args.name)
    if not key:
        print(f"Key '{args.name}' not found.")
        sys.exit(1)
    print(json.dumps({k: v for k, v in key.items() if k != 'private_key'}, indent=2))

# --- Query Commands ---
def cmd_query_balance(args):
    data = _get(get_node_url(args), f"/balance/{args.address}")
    print(f"Balance: {format_amount(int(data['balance']))}")
    print(f"Nonce: {data['nonce']}")

def cmd_query_record(args):
    data = _get(get_node_url(args), f"/record/{args.staking_id}")
    if int(data['amount']) == 0:
        print(f"Staking #{args.staking_id}: not found (never created or already redeemed)")
        return
    print(f"Staking #{args.staking_id}")
    print(f"Owner:  {data['owner']}")
    print(f"Amount: {format_amount(int(data['amount']))}")
    if data['redeemable_time']:
        print(f"Redeemable at: {data['redeemable_time']}")
    else:
        print("Redeemable at: - (not unstaked)")

def cmd_query_records(args):
    data = _get(get_node_url(args), f"/records/{args.owner}")
    if not data['records']:
        print("No live deposits.")
        return
    print(f"{'ID':<8} {'Amount':<30} {'Status':<10} {'Remaining (s)'}")
    print("-" * 70)
    for r in data['records']:
        remaining = "-" if r['seconds_remaining'] is None else r['seconds_remaining']
        print(f"{r['staking_id']:<8} {format_amount(int(r['amount'])):<30} {r['status']:<10} {remaining}")
    print(f"Total: {format_amount(int(data['total_staked']))}")

def cmd_query_status(args):
    print(json.dumps(_get(get_node_url(args), "/status"), indent=2))

def cmd_query_events(args):
    data = _get(get_node_url(args), f"/events?from_seq={args.from_seq}&limit={args.limit}")
    for ev in data['events']:
        fields = ", ".join(f"{k}={v}" for k, v in ev['data'].items())
        print(f"#{ev['seq']:<6} {ev['name']}({fields})")

def cmd_query_receipt(args):
    print(json.dumps(_get(get_node_url(args), f"/call/{args.call_hash}/receipt"), indent=2))

# --- Tx Commands ---
def get_nonce(url, address):
    return _get(url, f"/balance/{address}")['nonce']

def broadcast_call(url, call: Call):
    call_json = call.model_dump(mode="json")
    try:
        resp = requests.post(f"{url}/call/send", json=call_json, timeout=30)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"Error broadcasting: {resp.text}")
        sys.exit(1)

    receipt = resp.json()
    if receipt['status'] == 'confirmed':
        print(f"Success! CallHash: {receipt['call_hash']} Result: {receipt['result']}")
    else:
        print(f"Failed: {receipt['error']} (CallHash: {receipt['call_hash']})")
        sys.exit(1)
    return receipt

def build_call(args, call_type: CallType, **fields) -> tuple:
    sender_key = KeyStore().get_key(args.from_name)
    if not sender_key:
        print(f"Key '{args.from_name}' not found.")
        sys.exit(1)

    url = get_node_url(args)
    from_addr = sender_key['address']
    call = Call(
        call_type=call_type,
        from_address=from_addr,
        nonce=get_nonce(url, from_addr),
        pub_key=sender_key['public_key'],
        **fields
    )
    call.sign(bytes.fromhex(sender_key['private_key']))
    return url, call

def _amount_arg(text: str) -> int:
    try:
        return parse_amount(text)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

def cmd_tx_approve(args):
    amount = _amount_arg(args.amount)
    url, call = build_call(args, CallType.APPROVE, to_address=args.spender, amount=amount)
    spender = args.spender or "the custody account"
    print(f"Approving {args.amount} {DENOM} for {spender}...")
    broadcast_call(url, call)

def cmd_tx_transfer(args):
    amount = _amount_arg(args.amount)
    url, call = build_call(args, CallType.TRANSFER, to_address=args.to_address, amount=amount)
    print(f"Sending {args.amount} {DENOM} to {args.to_address}...")
    broadcast_call(url, call)

def cmd_tx_stake(args):
    amount = _amount_arg(args.amount)
    url, call = build_call(args, CallType.STAKE, amount=amount)
    print(f"Staking {args.amount} {DENOM} from {call.from_address}...")
    broadcast_call(url, call)

def cmd_tx_unstake(args):
    url, call = build_call(args, CallType.UNSTAKE, staking_id=args.staking_id)
    print(f"Unstaking #{args.staking_id} (funds stay locked for the cooling-off period)...")
    broadcast_call(url, call)

def cmd_tx_redeem(args):
    url, call = build_call(args, CallType.REDEEM, staking_id=args.staking_id)
    print(f"Redeeming #{args.staking_id}...")
    broadcast_call(url, call)

def main():
    parser = argparse.ArgumentParser(prog="stakevault-cli", description="StakeVault Client CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create new key")
    pk_add.add_argument("name", help="Key name")

    pk_imp = sp_keys.add_parser("import", help="Import private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("--private-key", required=True, help="Hex private key")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show key details")
    pk_show.add_argument("name", help="Key name")

    # query
    p_query = subparsers.add_parser("query", help="Query vault state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    pq_bal = sp_query.add_parser("balance", help="Get token balance")
    pq_bal.add_argument("address", help="Account address")

    pq_rec = sp_query.add_parser("record", help="Get deposit by staking id")
    pq_rec.add_argument("staking_id", type=int, help="Staking id")

    pq_recs = sp_query.add_parser("records", help="List live deposits of an owner")
    pq_recs.add_argument("owner", help="Owner address")

    sp_query.add_parser("status", help="Node status")

    pq_ev = sp_query.add_parser("events", help="Notification history")
    pq_ev.add_argument("--from-seq", type=int, default=0, help="Return events after this sequence")
    pq_ev.add_argument("--limit", type=int, default=100, help="Max events")

    pq_rc = sp_query.add_parser("receipt", help="Get call receipt")
    pq_rc.add_argument("call_hash", help="Call hash")

    # tx
    p_tx = subparsers.add_parser("tx", help="Create and send calls")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    pt_appr = sp_tx.add_parser("approve", help="Allow the vault to pull tokens for staking")
    pt_appr.add_argument("amount", help="Allowance in STV, or 'max'")
    pt_appr.add_argument("--spender", default=None, help="Spender address (default: custody account)")
    pt_appr.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    pt_send = sp_tx.add_parser("transfer", help="Send STV tokens")
    pt_send.add_argument("to_address", help="Recipient address")
    pt_send.add_argument("amount", help="Amount in STV")
    pt_send.add_argument("--from", dest="from_name", required=True, help="Sender key name")

    pt_stake = sp_tx.add_parser("stake", help="Deposit tokens into custody")
    pt_stake.add_argument("amount", help="Amount to stake in STV")
    pt_stake.add_argument("--from", dest="from_name", required=True, help="Depositor key name")

    pt_unstake = sp_tx.add_parser("unstake", help="Start the cooling-off period of a deposit")
    pt_unstake.add_argument("staking_id", type=int, help="Staking id")
    pt_unstake.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    pt_redeem = sp_tx.add_parser("redeem", help="Withdraw a deposit after the cooling-off period")
    pt_redeem.add_argument("staking_id", type=int, help="Staking id")
    pt_redeem.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    args = parser.parse_args()

    if args.command == "keys":
        if args.subcommand == "add": cmd_keys_add(args)
        elif args.subcommand == "import": cmd_keys_import(args)
        elif args.subcommand == "list": cmd_keys_list(args)
        elif args.subcommand == "show": cmd_keys_show(args)
        else: p_keys.print_help()

    elif args.command == "query":
        if args.subcommand == "balance": cmd_query_balance(args)
        elif args.subcommand == "record": cmd_query_record(args)
        elif args.subcommand == "records": cmd_query_records(args)
        elif args.subcommand == "status": cmd_query_status(args)
        elif args.subcommand == "events": cmd_query_events(args)
        elif args.subcommand == "receipt": cmd_query_receipt(args)
        else: p_query.print_help()

    elif args.command == "tx":
        if args.subcommand == "approve": cmd_tx_approve(args)
        elif args.subcommand == "transfer": cmd_tx_transfer(args)
        elif args.subcommand == "stake": cmd_tx_stake(args)
        elif args.subcommand == "unstake": cmd_tx_unstake(args)
        elif args.subcommand == "redeem": cmd_tx_redeem(args)
        else: p_tx.print_help()

    else:
        parser.print_help()

if __name__ == "__main__":
    main()
