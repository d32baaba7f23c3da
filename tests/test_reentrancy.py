"""
Reentrancy and checks-effects-interactions.

A hostile token ledger calls back into the staking ledger from inside
transfer_from / transfer. The guard must reject the nested call, the outer
operation must abort, and the staking ledger must end up exactly as before.
"""
import pytest

from stakevault.protocol.crypto.addresses import address_from_pubkey, contract_address
from stakevault.protocol.crypto.keys import generate_private_key, public_key_from_private
from stakevault.protocol.types.common import RecordStatus
from stakevault.vault.core.clock import ManualClock
from stakevault.vault.core.errors import ReentrantCall
from stakevault.vault.core.staking import StakingLedger
from stakevault.vault.core.token import TokenLedger

ONE = 10**18
DAY = 24 * 60 * 60


class HookedToken(TokenLedger):
    """Token ledger that runs a hook before moving any funds."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.hook = None

    def transfer_from(self, spender, from_address, to_address, amount):
        if self.hook:
            self.hook()
        return super().transfer_from(spender, from_address, to_address, amount)

    def transfer(self, sender, to_address, amount):
        if self.hook:
            self.hook()
        return super().transfer(sender, to_address, amount)


class TokenDown(Exception):
    pass


def new_address():
    return address_from_pubkey(public_key_from_private(generate_private_key()))


@pytest.fixture
def clock():
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def ledger(clock):
    token = HookedToken(contract_address("token"))
    return StakingLedger(token, contract_address("custody"), clock=clock)


@pytest.fixture
def owner(ledger):
    addr = new_address()
    ledger.token.mint(addr, ONE)
    ledger.token.approve(addr, ledger.address, ONE)
    return addr


def test_reentrant_stake_is_rejected(ledger, owner):
    stake_events = []
    ledger.events.subscribe("Stake", lambda **data: stake_events.append(data))
    ledger.token.hook = lambda: ledger.stake(owner, 1)

    with pytest.raises(ReentrantCall, match="ReentrancyGuard: reentrant call"):
        ledger.stake(owner, ONE // 2)

    assert ledger.last_staking_id == 0
    assert ledger.active_count == 0
    assert ledger.total_staked() == 0
    assert ledger.token.balance_of(owner) == ONE
    assert stake_events == []


def test_reentrant_redeem_is_rejected(ledger, owner, clock):
    staking_id = ledger.stake(owner, ONE // 2)
    ledger.unstake(owner, staking_id)
    clock.advance(DAY)

    ledger.token.hook = lambda: ledger.redeem(owner, staking_id)
    with pytest.raises(ReentrantCall):
        ledger.redeem(owner, staking_id)

    # Record back in place, nothing paid out
    assert ledger.get_status(staking_id) == RecordStatus.UNSTAKED
    assert ledger.total_staked() == ONE // 2
    assert ledger.custody_balance() == ONE // 2
    assert ledger.token.balance_of(owner) == ONE // 2

    ledger.token.hook = None
    assert ledger.redeem(owner, staking_id) == ONE // 2
    assert ledger.token.balance_of(owner) == ONE


def test_cross_operation_reentry_is_rejected(ledger, owner, clock):
    first = ledger.stake(owner, ONE // 4)
    ledger.token.hook = lambda: ledger.unstake(owner, first)

    with pytest.raises(ReentrantCall):
        ledger.stake(owner, ONE // 4)
    assert ledger.get_status(first) == RecordStatus.ACTIVE
    assert ledger.last_staking_id == 1


def test_effects_applied_before_interaction(ledger, owner, clock):
    seen = {}

    def observe_stake():
        seen["record"] = ledger.get_record(1)
        seen["total"] = ledger.total_staked()

    ledger.token.hook = observe_stake
    ledger.stake(owner, ONE // 2)
    assert seen["record"].owner == owner
    assert seen["total"] == ONE // 2

    ledger.unstake(owner, 1)
    clock.advance(DAY)

    def observe_redeem():
        seen["status"] = ledger.get_status(1)

    ledger.token.hook = observe_redeem
    ledger.redeem(owner, 1)
    # Record already deleted when funds are requested
    assert seen["status"] == RecordStatus.REDEEMED


def test_collaborator_error_propagates_and_rolls_back(ledger, owner, clock):
    staking_id = ledger.stake(owner, ONE // 2)
    ledger.unstake(owner, staking_id)
    clock.advance(DAY)

    def fail():
        raise TokenDown("token unavailable")

    ledger.token.hook = fail
    with pytest.raises(TokenDown, match="token unavailable"):
        ledger.redeem(owner, staking_id)
    assert ledger.get_status(staking_id) == RecordStatus.UNSTAKED

    with pytest.raises(TokenDown):
        ledger.stake(owner, 1)
    assert ledger.last_staking_id == staking_id


def test_guard_released_after_failure(ledger, owner):
    ledger.token.hook = lambda: ledger.stake(owner, 1)
    with pytest.raises(ReentrantCall):
        ledger.stake(owner, ONE // 2)

    ledger.token.hook = None
    assert ledger.stake(owner, ONE // 2) == 1
