"""
Fungible token ledger with ERC-20 semantics.

This is the custody collaborator of the staking ledger: the staking ledger is
a "spender" during stake (transfer_from) and a "sender" during redeem
(transfer). Each operation validates everything before mutating, so a raised
error leaves balances and allowances untouched.
"""
from typing import Dict, Optional, Tuple
import logging

from ...protocol.config.params import VaultConfig, CURRENT_NETWORK
from ...protocol.crypto.addresses import ZERO_ADDRESS
from ...protocol.types.events import TransferEvent, ApprovalEvent
from .errors import (
    ArithmeticOverflow,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidTransfer,
)
from .events import EventBus

logger = logging.getLogger(__name__)


class TokenLedger:
    def __init__(self, address: str, config: VaultConfig = CURRENT_NETWORK, events: Optional[EventBus] = None):
        self.address = address
        self.config = config
        self.events = events if events is not None else EventBus()
        self.total_supply = 0
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}

    # --- Views ---
    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    # --- Mutations ---
    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self._check_amount(amount)
        if owner == ZERO_ADDRESS:
            raise InvalidTransfer("ERC20: approve from the zero address")
        if spender == ZERO_ADDRESS:
            raise InvalidTransfer("ERC20: approve to the zero address")

        self._allowances[(owner, spender)] = amount
        self.events.publish(ApprovalEvent(owner=owner, spender=spender, amount=amount))
        return True

    def transfer(self, sender: str, to_address: str, amount: int) -> bool:
        self._check_transfer(sender, to_address, amount)
        self._move(sender, to_address, amount)
        return True

    def transfer_from(self, spender: str, from_address: str, to_address: str, amount: int) -> bool:
        """Moves `amount` out of `from_address` using the allowance granted to `spender`."""
        self._check_amount(amount)
        current = self.allowance(from_address, spender)
        # max_amount allowance never decreases
        if current != self.config.max_amount and current < amount:
            raise InsufficientAllowance()
        self._check_transfer(from_address, to_address, amount)

        if current != self.config.max_amount:
            self._allowances[(from_address, spender)] = current - amount
        self._move(from_address, to_address, amount)
        return True

    def mint(self, to_address: str, amount: int) -> None:
        """Creates new units (genesis allocation, faucet, fixtures)."""
        self._check_amount(amount)
        if to_address == ZERO_ADDRESS:
            raise InvalidTransfer("ERC20: mint to the zero address")
        if self.total_supply + amount > self.config.max_amount:
            raise ArithmeticOverflow(f"Total supply would exceed {self.config.max_amount}")

        self.total_supply += amount
        self._balances[to_address] = self.balance_of(to_address) + amount
        self.events.publish(TransferEvent(from_address=ZERO_ADDRESS, to_address=to_address, amount=amount))
        logger.debug(f"Minted {amount} to {to_address}")

    # --- Internals ---
    def _check_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidTransfer(f"Amount must be an integer, got {type(amount).__name__}")
        if amount < 0:
            raise InvalidTransfer("ERC20: negative amount")
        if amount > self.config.max_amount:
            raise ArithmeticOverflow(f"Amount {amount} exceeds {self.config.max_amount}")

    def _check_transfer(self, from_address: str, to_address: str, amount: int) -> None:
        self._check_amount(amount)
        if from_address == ZERO_ADDRESS:
            raise InvalidTransfer("ERC20: transfer from the zero address")
        if to_address == ZERO_ADDRESS:
            raise InvalidTransfer("ERC20: transfer to the zero address")
        if self.balance_of(from_address) < amount:
            raise InsufficientBalance()
        # Unreachable while total_supply is bounded, kept as an explicit guard
        if from_address != to_address and self.balance_of(to_address) + amount > self.config.max_amount:
            raise ArithmeticOverflow(f"Balance of {to_address} would exceed {self.config.max_amount}")

    def _move(self, from_address: str, to_address: str, amount: int) -> None:
        self._balances[from_address] = self.balance_of(from_address) - amount
        self._balances[to_address] = self.balance_of(to_address) + amount
        self.events.publish(TransferEvent(from_address=from_address, to_address=to_address, amount=amount))

    # --- Simulation / persistence ---
    def clone(self, events: Optional[EventBus] = None) -> 'TokenLedger':
        """Creates a copy of the ledger (for simulate-then-commit)."""
        cloned = TokenLedger(self.address, self.config, events if events is not None else self.events)
        cloned.total_supply = self.total_supply
        cloned._balances = dict(self._balances)
        cloned._allowances = dict(self._allowances)
        return cloned

    def to_state(self) -> dict:
        return {
            "total_supply": self.total_supply,
            "balances": {addr: bal for addr, bal in self._balances.items() if bal > 0},
            "allowances": {k: v for k, v in self._allowances.items() if v > 0},
        }

    def load_state(self, state: dict) -> None:
        self.total_supply = state.get("total_supply", 0)
        self._balances = dict(state.get("balances", {}))
        self._allowances = dict(state.get("allowances", {}))
