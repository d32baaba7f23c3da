# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking ledger: time-locked custody of token deposits.

Each deposit moves through

    ACTIVE (redeemable_time == 0) -> UNSTAKED (redeemable_time == T) -> deleted

and only its owner can drive it. Every mutating operation is guarded against
reentrant invocation and finishes its own state changes before asking the
token ledger to move funds (checks, effects, interaction). If the token call
fails, the ledger restores the state it had before the operation started.
"""
from contextlib import contextmanager
from typing import Dict, Optional, Tuple
import logging

from ...protocol.config.params import VaultConfig, CURRENT_NETWORK
from ...protocol.types.common import RecordStatus
from ...protocol.types.events import StakeEvent, UnstakeEvent, RedeemEvent
from ...protocol.types.record import StakingRecord
from .clock import SystemClock
from .errors import (
    AlreadyUnstaked,
    ArithmeticOverflow,
    InvalidAmount,
    InvariantViolation,
    NotOwner,
    NotRedeemable,
    NotUnstaked,
    ReentrantCall,
)
from .events import EventBus
from .token import TokenLedger

logger = logging.getLogger(__name__)

_Snapshot = Tuple[int, int, Dict[int, StakingRecord]]


class StakingLedger:
    def __init__(self,
                 token: TokenLedger,
                 address: str,
                 config: VaultConfig = CURRENT_NETWORK,
                 clock=None,
                 events: Optional[EventBus] = None):
        self.token = token
        self.address = address  # custody account in the token ledger
        self.config = config
        self.clock = clock if clock is not None else SystemClock()
        self.events = events if events is not None else EventBus()

        self._last_staking_id = 0
        self._total_staked = 0
        self._records: Dict[int, StakingRecord] = {}
        self._entered = False

    # --- Views ---
    @property
    def last_staking_id(self) -> int:
        """Last allocated id; the next stake receives last_staking_id + 1."""
        return self._last_staking_id

    def get_record(self, staking_id: int) -> StakingRecord:
        """Returns the record, or the zeroed sentinel if absent or redeemed."""
        record = self._records.get(staking_id) if self._is_id(staking_id) else None
        return record if record is not None else StakingRecord.empty()

    def get_status(self, staking_id: int) -> RecordStatus:
        if not self._is_id(staking_id):
            return RecordStatus.ABSENT
        record = self._records.get(staking_id)
        if record is not None:
            return record.status
        # Ids leave the record set only through redeem
        if 1 <= staking_id <= self._last_staking_id:
            return RecordStatus.REDEEMED
        return RecordStatus.ABSENT

    def records_of(self, owner: str) -> Dict[int, StakingRecord]:
        return {sid: rec for sid, rec in sorted(self._records.items()) if rec.owner == owner}

    def total_staked(self) -> int:
        """Sum of amount over all live records."""
        return self._total_staked

    def custody_balance(self) -> int:
        return self.token.balance_of(self.address)

    @property
    def active_count(self) -> int:
        return len(self._records)

    # --- Operations ---
    def stake(self, caller: str, amount: int) -> int:
        """Moves `amount` from caller into custody and opens a new deposit."""
        with self._non_reentrant():
            self._check_amount(amount)

            snapshot = self._snapshot()
            staking_id = self._last_staking_id + 1
            self._last_staking_id = staking_id
            self._records[staking_id] = StakingRecord(owner=caller, amount=amount)
            self._total_staked += amount

            try:
                self.token.transfer_from(self.address, caller, self.address, amount)
                self._validate_state()
            except Exception:
                self._restore(snapshot)
                raise

            self.events.publish(StakeEvent(staking_id=staking_id, owner=caller, amount=amount))
            logger.info(f"Stake #{staking_id}: {amount} from {caller}")
            return staking_id

    def unstake(self, caller: str, staking_id: int) -> int:
        """Starts the cooling-off period. No tokens move."""
        with self._non_reentrant():
            record = self._require_owner(caller, staking_id)
            if record.redeemable_time != 0:
                raise AlreadyUnstaked()

            redeemable_time = self.clock.now() + self.config.lock_duration_sec
            if redeemable_time > self.config.max_timestamp:
                raise ArithmeticOverflow(f"redeemable_time {redeemable_time} exceeds {self.config.max_timestamp}")

            self._records[staking_id] = record.model_copy(update={"redeemable_time": redeemable_time})

            self.events.publish(UnstakeEvent(staking_id=staking_id, redeemable_time=redeemable_time))
            logger.info(f"Unstake #{staking_id}: redeemable at {redeemable_time}")
            return redeemable_time

    def redeem(self, caller: str, staking_id: int) -> int:
        """Deletes the deposit and pays its amount back to the owner."""
        with self._non_reentrant():
            record = self._require_owner(caller, staking_id)
            if record.redeemable_time == 0:
                raise NotUnstaked()
            if self.clock.now() < record.redeemable_time:
                raise NotRedeemable()

            snapshot = self._snapshot()
            del self._records[staking_id]
            self._total_staked -= record.amount

            try:
                self.token.transfer(self.address, record.owner, record.amount)
                self._validate_state()
            except Exception:
                self._restore(snapshot)
                raise

            self.events.publish(RedeemEvent(staking_id=staking_id))
            logger.info(f"Redeem #{staking_id}: {record.amount} to {record.owner}")
            return record.amount

    # --- Guards ---
    @contextmanager
    def _non_reentrant(self):
        if self._entered:
            logger.warning("Rejected reentrant call into staking ledger")
            raise ReentrantCall()
        self._entered = True
        try:
            yield
        finally:
            self._entered = False

    def _check_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount()
        if amount > self.config.max_amount:
            raise InvalidAmount(f"Staking: amount exceeds {self.config.max_amount}")

    def _require_owner(self, caller: str, staking_id: int) -> StakingRecord:
        record = self._records.get(staking_id) if self._is_id(staking_id) else None
        if record is not None and record.owner == caller:
            return record

        if record is not None:
            reason = "wrong_owner"
        elif self.get_status(staking_id) == RecordStatus.REDEEMED:
            reason = "redeemed"
        else:
            reason = "unknown_id"
        logger.warning(f"Staking #{staking_id} refused for {caller}: {reason}")
        raise NotOwner(reason)

    def _validate_state(self) -> None:
        """Custody must always cover every live deposit."""
        custody = self.custody_balance()
        if custody < self._total_staked:
            raise InvariantViolation(
                f"Staking: custody {custody} below total staked {self._total_staked}"
            )

    @staticmethod
    def _is_id(staking_id) -> bool:
        return isinstance(staking_id, int) and not isinstance(staking_id, bool)

    def _snapshot(self) -> _Snapshot:
        return self._last_staking_id, self._total_staked, dict(self._records)

    def _restore(self, snapshot: _Snapshot) -> None:
        self._last_staking_id, self._total_staked, self._records = snapshot

    # --- Simulation / persistence ---
    def clone(self, token: TokenLedger, events: Optional[EventBus] = None) -> 'StakingLedger':
        """Copy bound to another token ledger (for simulate-then-commit)."""
        cloned = StakingLedger(token, self.address, self.config, self.clock,
                               events if events is not None else self.events)
        cloned._last_staking_id = self._last_staking_id
        cloned._total_staked = self._total_staked
        cloned._records = dict(self._records)
        return cloned

    def to_state(self) -> dict:
        return {
            "last_staking_id": self._last_staking_id,
            "records": dict(self._records),
        }

    def load_state(self, last_staking_id: int, records: Dict[int, StakingRecord]) -> None:
        if any(sid < 1 or sid > last_staking_id for sid in records):
            raise InvariantViolation("Stored record id outside allocated range")
        self._last_staking_id = last_staking_id
        self._records = dict(records)
        self._total_staked = sum(r.amount for r in self._records.values())
