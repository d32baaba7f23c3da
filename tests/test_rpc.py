import json
import pytest
from fastapi.testclient import TestClient

from stakevault.protocol.config.params import CURRENT_NETWORK
from stakevault.protocol.crypto.addresses import address_from_pubkey
from stakevault.protocol.crypto.keys import generate_private_key, public_key_from_private
from stakevault.protocol.types.call import Call
from stakevault.protocol.types.common import CallType
from stakevault.vault.core.clock import ManualClock
from stakevault.vault.core.vault import Vault
from stakevault.vault.rpc import api

ONE = 10**18
DAY = 24 * 60 * 60


@pytest.fixture
def faucet():
    priv = generate_private_key()
    pub = public_key_from_private(priv)
    return priv, pub, address_from_pubkey(pub, prefix=CURRENT_NETWORK.bech32_prefix)


@pytest.fixture
def clock():
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def node(tmp_path, faucet, clock):
    _, _, addr = faucet
    (tmp_path / "genesis.json").write_text(json.dumps({"alloc": {addr: str(5 * ONE)}}))
    vault = Vault(str(tmp_path / "vault.db"), clock=clock)
    api.vault = vault
    yield vault
    api.vault = None
    vault.close()


@pytest.fixture
def client(node):
    return TestClient(api.app)


def send(client, faucet, call_type, nonce, **fields):
    priv, pub, addr = faucet
    call = Call(call_type=call_type, from_address=addr, nonce=nonce, pub_key=pub.hex(), **fields)
    call.sign(priv)
    return client.post("/call/send", json=call.model_dump(mode="json"))


def test_not_initialized():
    api.vault = None
    client = TestClient(api.app)
    assert client.get("/status").status_code == 503


def test_status(client, node):
    resp = client.get("/status")
    assert resp.status_code == 200
    data = resp.json()
    assert data["custody_address"] == node.custody_address
    assert data["lock_duration_sec"] == CURRENT_NETWORK.lock_duration_sec


def test_balance(client, faucet):
    _, _, addr = faucet
    data = client.get(f"/balance/{addr}").json()
    assert data["balance"] == str(5 * ONE)
    assert data["nonce"] == 0


def test_stake_flow_over_http(client, faucet, node, clock):
    _, _, addr = faucet

    resp = send(client, faucet, CallType.APPROVE, 0, amount=2 * ONE)
    assert resp.json()["status"] == "confirmed"
    allowance = client.get(f"/allowance/{addr}/{node.custody_address}").json()
    assert allowance["allowance"] == str(2 * ONE)

    resp = send(client, faucet, CallType.STAKE, 1, amount=ONE)
    receipt = resp.json()
    assert receipt["status"] == "confirmed"
    assert receipt["result"] == 1

    record = client.get("/record/1").json()
    assert record["owner"] == addr
    assert record["amount"] == str(ONE)
    assert record["redeemable_time"] == 0

    send(client, faucet, CallType.UNSTAKE, 2, staking_id=1)
    records = client.get(f"/records/{addr}").json()
    assert records["records"][0]["status"] == "unstaked"
    assert records["records"][0]["seconds_remaining"] == DAY
    assert records["total_staked"] == str(ONE)

    clock.advance(DAY)
    resp = send(client, faucet, CallType.REDEEM, 3, staking_id=1)
    assert resp.json()["result"] == ONE

    record = client.get("/record/1").json()
    assert record["amount"] == "0"
    assert client.get(f"/records/{addr}").json()["records"] == []

    receipt = client.get(f"/call/{receipt['call_hash']}/receipt").json()
    assert receipt["status"] == "confirmed"


def test_failed_call_returns_failed_receipt(client, faucet):
    resp = send(client, faucet, CallType.STAKE, 0, amount=ONE)
    assert resp.status_code == 200
    receipt = resp.json()
    assert receipt["status"] == "failed"
    assert receipt["error"] == "ERC20: insufficient allowance"


def test_rejected_call(client, faucet):
    resp = send(client, faucet, CallType.APPROVE, 9, amount=ONE)
    assert resp.status_code == 400
    assert "Invalid nonce" in resp.json()["detail"]


def test_replayed_call_returns_original_receipt(client, faucet):
    first = send(client, faucet, CallType.APPROVE, 0, amount=ONE).json()
    again = send(client, faucet, CallType.APPROVE, 0, amount=ONE).json()
    assert again == first
    assert client.get(f"/balance/{faucet[2]}").json()["nonce"] == 1


def test_unknown_receipt(client):
    assert client.get("/call/deadbeef/receipt").status_code == 404


def test_events(client, faucet):
    send(client, faucet, CallType.APPROVE, 0, amount=ONE)
    events = client.get("/events", params={"from_seq": 1}).json()["events"]
    assert [e["name"] for e in events] == ["Approval"]
    assert events[0]["data"]["amount"] == ONE

    assert client.get("/events", params={"limit": 0}).status_code == 400


def test_metrics(client, faucet):
    send(client, faucet, CallType.APPROVE, 0, amount=ONE)
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "stakevault_calls_total" in resp.text
    assert "stakevault_total_staked" in resp.text


def test_out_of_order_submission(client, faucet):
    early = send(client, faucet, CallType.APPROVE, 1, amount=2 * ONE)
    assert early.status_code == 400

    first = send(client, faucet, CallType.APPROVE, 0, amount=ONE)
    assert first.json()["status"] == "confirmed"

    receipt = send(client, faucet, CallType.APPROVE, 1, amount=2 * ONE).json()
    assert receipt["status"] == "confirmed"
    assert receipt["sequence"] == 2
    assert receipt["error"] is None
    assert receipt["error_type"] is None

    stored = client.get(f"/call/{receipt['call_hash']}/receipt").json()
    assert stored == receipt
