# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, List, Optional, Tuple
import logging
import os
import json
import sqlite3
import threading
from ...protocol.types.call import Call
from ...protocol.types.common import CallType, ProtocolError, ValidationError
from ...protocol.types.record import StakingRecord
from ...protocol.crypto.keys import verify
from ...protocol.crypto.addresses import address_from_pubkey, contract_address, is_valid_address
from ...protocol.config.params import VaultConfig, CURRENT_NETWORK
from ..storage.db import StorageDB
from ..observability.metrics import update_call_metrics, update_metrics
from .clock import SystemClock
from .events import EventBus, EventBuffer
from .receipts import CallReceipt, CallReceiptStore
from .staking import StakingLedger
from .token import TokenLedger

logger = logging.getLogger(__name__)

class Vault:
    """
    Node-side host for the staking ledger.

    Calls are executed one at a time. Each call runs against clones of the
    token and staking ledgers; the clones replace the live ledgers only when
    the call succeeds, so a failed call leaves no ledger change behind.
    """

    def __init__(self, db_path: str, config: VaultConfig = CURRENT_NETWORK, clock=None):
        self.db = StorageDB(db_path)
        self._lock = threading.RLock()
        self.config = config
        self.clock = clock if clock is not None else SystemClock()
        self.events = EventBus()
        self.receipts = CallReceiptStore(max_receipts=config.max_receipts)

        self.token_address = contract_address("token", prefix=config.bech32_prefix)
        self.custody_address = contract_address("custody", prefix=config.bech32_prefix)
        self.token = TokenLedger(self.token_address, config, self.events)
        self.staking = StakingLedger(self.token, self.custody_address, config, self.clock, self.events)

        self.sequence = 0
        self._nonces: Dict[str, int] = {}

        # Genesis allocation lives next to the database
        self.genesis_path = os.path.join(os.path.dirname(os.path.abspath(db_path)), "genesis.json")
        self._load_state()

    # --- Startup ---
    def _load_state(self):
        stored_seq = self.db.get_state("meta:sequence")
        if stored_seq is None:
            logger.info("Vault initialized empty")
            self._apply_genesis_allocation()
            return

        self.sequence = int(stored_seq)
        token_state = {
            "total_supply": int(self.db.get_state("meta:total_supply") or 0),
            "balances": {k.split(":", 1)[1]: int(v) for k, v in self.db.get_state_by_prefix("bal:").items()},
            "allowances": {
                tuple(k.split(":")[1:3]): int(v) for k, v in self.db.get_state_by_prefix("alw:").items()
            },
        }
        self.token.load_state(token_state)

        records = {
            int(k.split(":", 1)[1]): StakingRecord.model_validate_json(v)
            for k, v in self.db.get_state_by_prefix("rec:").items()
        }
        self.staking.load_state(int(self.db.get_state("meta:last_staking_id") or 0), records)
        self._nonces = {k.split(":", 1)[1]: int(v) for k, v in self.db.get_state_by_prefix("nonce:").items()}

        logger.info(
            f"Vault loaded at sequence {self.sequence}: {self.staking.active_count} live deposits, "
            f"{self.staking.total_staked()} staked"
        )

    def _apply_genesis_allocation(self):
        if not os.path.exists(self.genesis_path):
            logger.warning("No genesis.json found. Starting with 0 balances.")
            self._commit(self.token, self.staking, "genesis", [], self.sequence)
            return

        with open(self.genesis_path, "r") as f:
            genesis = json.load(f)

        alloc = genesis.get("alloc", {})
        if not isinstance(alloc, dict):
            raise ValueError("genesis.json: 'alloc' must map address -> amount")

        buffer = EventBuffer()
        token = self.token.clone(buffer)
        for addr, amount in alloc.items():
            if not is_valid_address(addr, self.config.bech32_prefix):
                raise ValueError(f"genesis.json: invalid address {addr}")
            token.mint(addr, int(amount))

        staking = self.staking.clone(token, buffer)
        self._commit(token, staking, "genesis", buffer.pending, self.sequence)
        self._swap(token, staking)
        buffer.flush(self.events)
        logger.info(f"Applied genesis allocation to {len(alloc)} accounts.")

    # --- Views ---
    def get_nonce(self, address: str) -> int:
        return self._nonces.get(address, 0)

    def get_balance(self, address: str) -> int:
        return self.token.balance_of(address)

    def get_record(self, staking_id: int) -> StakingRecord:
        return self.staking.get_record(staking_id)

    def get_events(self, from_seq: int = 0, limit: int = 1000) -> List[dict]:
        return [
            {"seq": seq, "call_hash": call_hash, "name": name, "data": json.loads(data)}
            for seq, call_hash, name, data in self.db.get_events(from_seq, limit)
        ]

    def status(self) -> dict:
        return {
            "network": self.config.network_id,
            "chain_id": self.config.chain_id,
            "sequence": self.sequence,
            "time": self.clock.now(),
            "token_address": self.token_address,
            "custody_address": self.custody_address,
            "last_staking_id": self.staking.last_staking_id,
            "active_deposits": self.staking.active_count,
            "total_staked": str(self.staking.total_staked()),
            "custody_balance": str(self.staking.custody_balance()),
            "lock_duration_sec": self.config.lock_duration_sec,
        }

    # --- Execution ---
    def apply_call(self, call: Call) -> CallReceipt:
        """
        Verifies and executes one signed call.

        Malformed or badly signed calls raise ValidationError and consume
        nothing. A ledger failure consumes the nonce and yields a failed
        receipt; ledger state is untouched. If the database write fails the
        call leaves no trace: sequence, nonce and ledgers stay as they were.
        """
        with self._lock:
            self._verify_call(call)
            call_hash = call.hash()
            sequence = self.sequence + 1
            nonce = self.get_nonce(call.from_address) + 1

            buffer = EventBuffer()
            token = self.token.clone(buffer)
            staking = self.staking.clone(token, buffer)

            try:
                result = self._dispatch(call, token, staking)
            except ProtocolError as e:
                logger.warning(f"Call {call_hash[:8]} ({call.call_type.value}) from {call.from_address} failed: {e}")
                self._persist(self.token, self.staking, call, call_hash, [], sequence, nonce)
                receipt = self.receipts.mark_failed(call_hash, e, self.sequence)
                update_call_metrics(call.call_type.value, 'failed')
                update_metrics(self)
                return receipt

            self._persist(token, staking, call, call_hash, buffer.pending, sequence, nonce)
            self._swap(token, staking)
            buffer.flush(self.events)

            receipt = self.receipts.mark_confirmed(call_hash, self.sequence, result)
            update_call_metrics(call.call_type.value, 'confirmed')
            update_metrics(self)
            logger.info(f"Call {call_hash[:8]} ({call.call_type.value}) confirmed at sequence {self.sequence}")
            return receipt

    def _verify_call(self, call: Call) -> None:
        if not call.signature or not call.pub_key:
            raise ValidationError("Missing signature or pub_key")

        try:
            pub_bytes = bytes.fromhex(call.pub_key)
            sig_bytes = bytes.fromhex(call.signature)
        except ValueError as e:
            raise ValidationError(f"Invalid hex encoding: {e}")

        derived_addr = address_from_pubkey(pub_bytes, prefix=self.config.bech32_prefix)
        if derived_addr != call.from_address:
            raise ValidationError(f"pub_key mismatch: derived {derived_addr}, expected {call.from_address}")

        if not verify(bytes.fromhex(call.hash()), sig_bytes, pub_bytes):
            raise ValidationError("Invalid signature")

        expected = self.get_nonce(call.from_address)
        if call.nonce != expected:
            raise ValidationError(f"Invalid nonce: expected {expected}, got {call.nonce}")

        if call.call_type == CallType.TRANSFER:
            if not call.to_address or not is_valid_address(call.to_address, self.config.bech32_prefix):
                raise ValidationError("Transfer must have a valid to_address")
            # Custody is funded only through stake
            if call.to_address in (self.custody_address, self.token_address):
                raise ValidationError("Direct transfers to ledger accounts are not allowed")

        if call.call_type == CallType.APPROVE and call.to_address:
            if not is_valid_address(call.to_address, self.config.bech32_prefix):
                raise ValidationError("Approve spender is not a valid address")

    def _dispatch(self, call: Call, token: TokenLedger, staking: StakingLedger):
        caller = call.from_address
        if call.call_type == CallType.STAKE:
            return staking.stake(caller, call.amount)
        elif call.call_type == CallType.UNSTAKE:
            return staking.unstake(caller, call.staking_id)
        elif call.call_type == CallType.REDEEM:
            return staking.redeem(caller, call.staking_id)
        elif call.call_type == CallType.APPROVE:
            return token.approve(caller, call.to_address or self.custody_address, call.amount)
        elif call.call_type == CallType.TRANSFER:
            return token.transfer(caller, call.to_address, call.amount)
        raise ValidationError(f"Unknown call type: {call.call_type}")

    def _persist(self, token: TokenLedger, staking: StakingLedger, call: Call, call_hash: str,
                 events: List[Tuple[str, dict]], sequence: int, nonce: int) -> None:
        """Writes the call's outcome, then advances sequence and nonce in memory."""
        try:
            self._commit(token, staking, call_hash, events, sequence, (call.from_address, nonce))
        except sqlite3.Error as e:
            logger.error(f"Call {call_hash[:8]} not persisted: {e}")
            self.receipts.mark_failed(call_hash, e)
            raise
        self.sequence = sequence
        self._nonces[call.from_address] = nonce

    def _swap(self, token: TokenLedger, staking: StakingLedger) -> None:
        token.events = self.events
        staking.events = self.events
        self.token = token
        self.staking = staking

    # --- Persistence ---
    def _commit(self, token: TokenLedger, staking: StakingLedger, call_hash: str,
                events: List[Tuple[str, dict]], sequence: int,
                nonce: Optional[Tuple[str, int]] = None) -> None:
        updates, deletes = self._state_diff(token, staking)
        updates["meta:sequence"] = str(sequence)
        if nonce is not None:
            address, value = nonce
            updates[f"nonce:{address}"] = str(value)
        rows = [(call_hash, name, json.dumps(data)) for name, data in events]
        self.db.commit_state(updates, deletes, rows)

    def _state_diff(self, token: TokenLedger, staking: StakingLedger) -> Tuple[Dict[str, str], List[str]]:
        """Keys that changed between the live ledgers and the candidate ones."""
        updates: Dict[str, str] = {}
        deletes: List[str] = []

        old_records = self.staking.to_state()["records"]
        new_records = staking.to_state()["records"]
        for sid, rec in new_records.items():
            if old_records.get(sid) != rec:
                updates[f"rec:{sid}"] = rec.model_dump_json()
        deletes.extend(f"rec:{sid}" for sid in old_records if sid not in new_records)

        old_token = self.token.to_state()
        new_token = token.to_state()
        for addr, bal in new_token["balances"].items():
            if old_token["balances"].get(addr) != bal:
                updates[f"bal:{addr}"] = str(bal)
        deletes.extend(f"bal:{addr}" for addr in old_token["balances"] if addr not in new_token["balances"])

        for (owner, spender), amount in new_token["allowances"].items():
            if old_token["allowances"].get((owner, spender)) != amount:
                updates[f"alw:{owner}:{spender}"] = str(amount)
        deletes.extend(
            f"alw:{owner}:{spender}" for (owner, spender) in old_token["allowances"]
            if (owner, spender) not in new_token["allowances"]
        )

        updates["meta:last_staking_id"] = str(staking.last_staking_id)
        updates["meta:total_supply"] = str(token.total_supply)
        return updates, deletes

    def close(self):
        self.db.close()
