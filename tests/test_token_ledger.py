import pytest

from stakevault.protocol.config.params import CURRENT_NETWORK, VaultConfig
from stakevault.protocol.crypto.addresses import ZERO_ADDRESS, address_from_pubkey, contract_address
from stakevault.protocol.crypto.keys import generate_private_key, public_key_from_private
from stakevault.vault.core.errors import (
    ArithmeticOverflow,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidTransfer,
    TokenError,
)
from stakevault.vault.core.events import EventBus
from stakevault.vault.core.token import TokenLedger


def new_address():
    return address_from_pubkey(public_key_from_private(generate_private_key()))


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def token(bus):
    return TokenLedger(contract_address("token"), events=bus)


@pytest.fixture
def alice(token):
    addr = new_address()
    token.mint(addr, 1000)
    return addr


def test_mint_and_supply(token, alice):
    bob = new_address()
    token.mint(bob, 500)
    assert token.balance_of(alice) == 1000
    assert token.balance_of(bob) == 500
    assert token.total_supply == 1500
    assert token.balance_of(new_address()) == 0


def test_mint_supply_bound():
    config = VaultConfig(network_id="test", chain_id="t-1", genesis_premine=0, max_amount=1000)
    token = TokenLedger(contract_address("token"), config)
    token.mint(new_address(), 1000)
    with pytest.raises(ArithmeticOverflow):
        token.mint(new_address(), 1)
    assert token.total_supply == 1000


def test_transfer(token, alice, bus):
    transfers = []
    bus.subscribe("Transfer", lambda **data: transfers.append(data))
    bob = new_address()

    assert token.transfer(alice, bob, 300) is True
    assert token.balance_of(alice) == 700
    assert token.balance_of(bob) == 300
    assert transfers == [{"from_address": alice, "to_address": bob, "amount": 300}]


def test_transfer_exceeds_balance(token, alice):
    bob = new_address()
    with pytest.raises(InsufficientBalance, match="ERC20: transfer amount exceeds balance"):
        token.transfer(alice, bob, 1001)
    assert token.balance_of(alice) == 1000
    assert token.balance_of(bob) == 0


def test_transfer_to_self(token, alice):
    token.transfer(alice, alice, 1000)
    assert token.balance_of(alice) == 1000


@pytest.mark.parametrize("amount", [-5, True, 2.0, None])
def test_transfer_rejects_malformed_amounts(token, alice, amount):
    with pytest.raises(InvalidTransfer):
        token.transfer(alice, new_address(), amount)


def test_zero_address_endpoints(token, alice):
    with pytest.raises(InvalidTransfer):
        token.transfer(alice, ZERO_ADDRESS, 1)
    with pytest.raises(InvalidTransfer):
        token.transfer(ZERO_ADDRESS, alice, 0)
    with pytest.raises(InvalidTransfer):
        token.approve(alice, ZERO_ADDRESS, 1)
    with pytest.raises(InvalidTransfer):
        token.mint(ZERO_ADDRESS, 1)


def test_approve_overwrites(token, alice, bus):
    approvals = []
    bus.subscribe("Approval", lambda **data: approvals.append(data))
    spender = new_address()

    token.approve(alice, spender, 100)
    token.approve(alice, spender, 40)
    assert token.allowance(alice, spender) == 40
    assert approvals[-1] == {"owner": alice, "spender": spender, "amount": 40}


def test_transfer_from_spends_allowance(token, alice):
    spender, bob = new_address(), new_address()
    token.approve(alice, spender, 500)

    token.transfer_from(spender, alice, bob, 200)
    assert token.allowance(alice, spender) == 300
    assert token.balance_of(bob) == 200
    assert token.balance_of(alice) == 800


def test_transfer_from_checks_allowance_first(token, alice):
    spender, bob = new_address(), new_address()
    token.approve(alice, spender, 10)
    # Both allowance and balance are short: allowance error wins
    with pytest.raises(InsufficientAllowance, match="ERC20: insufficient allowance"):
        token.transfer_from(spender, alice, bob, 5000)


def test_transfer_from_balance_short(token, alice):
    spender, bob = new_address(), new_address()
    token.approve(alice, spender, 5000)
    with pytest.raises(InsufficientBalance):
        token.transfer_from(spender, alice, bob, 2000)
    # Nothing consumed on failure
    assert token.allowance(alice, spender) == 5000


def test_infinite_allowance(token, alice):
    spender = new_address()
    token.approve(alice, spender, CURRENT_NETWORK.max_amount)
    token.transfer_from(spender, alice, new_address(), 600)
    assert token.allowance(alice, spender) == CURRENT_NETWORK.max_amount


def test_token_errors_share_base(token, alice):
    with pytest.raises(TokenError):
        token.transfer_from(new_address(), alice, new_address(), 1)


def test_clone_and_state(token, alice):
    spender = new_address()
    token.approve(alice, spender, 7)
    cloned = token.clone()
    cloned.transfer(alice, spender, 1000)

    assert token.balance_of(alice) == 1000
    assert cloned.balance_of(alice) == 0

    state = cloned.to_state()
    # Empty balances are dropped
    assert alice not in state["balances"]
    assert state["allowances"] == {(alice, spender): 7}
    assert state["total_supply"] == 1000

    restored = TokenLedger(token.address)
    restored.load_state(state)
    assert restored.balance_of(spender) == 1000
    assert restored.allowance(alice, spender) == 7
