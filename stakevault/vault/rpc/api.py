from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from typing import Optional
from ...protocol.types.call import Call
from ...protocol.types.common import ValidationError
from ..core.vault import Vault
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="StakeVault Node RPC")

vault: Optional[Vault] = None

def _require_vault() -> Vault:
    if not vault:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return vault

@app.get("/status")
async def get_status():
    return _require_vault().status()

@app.get("/balance/{address}")
async def get_balance(address: str):
    v = _require_vault()
    return {
        "address": address,
        "balance": str(v.get_balance(address)),
        "nonce": v.get_nonce(address)
    }

@app.get("/allowance/{owner}/{spender}")
async def get_allowance(owner: str, spender: str):
    v = _require_vault()
    return {
        "owner": owner,
        "spender": spender,
        "allowance": str(v.token.allowance(owner, spender))
    }

@app.get("/record/{staking_id}")
async def get_record(staking_id: int):
    """Returns the deposit, or the zeroed sentinel if it is absent or redeemed."""
    v = _require_vault()
    record = v.get_record(staking_id)
    return {
        "staking_id": staking_id,
        "owner": record.owner,
        "amount": str(record.amount),
        "redeemable_time": record.redeemable_time
    }

@app.get("/records/{owner}")
async def get_records(owner: str):
    """Live deposits of one owner."""
    v = _require_vault()
    now = v.clock.now()
    records = [
        {
            "staking_id": sid,
            "amount": str(rec.amount),
            "redeemable_time": rec.redeemable_time,
            "status": rec.status.value,
            "seconds_remaining": max(0, rec.redeemable_time - now) if rec.redeemable_time else None
        }
        for sid, rec in v.staking.records_of(owner).items()
    ]
    return {
        "owner": owner,
        "records": records,
        "total_staked": str(sum(rec.amount for rec in v.staking.records_of(owner).values()))
    }

@app.get("/events")
async def get_events(from_seq: int = 0, limit: int = 100):
    v = _require_vault()
    if limit < 1 or limit > 1000:
        raise HTTPException(status_code=400, detail="limit must be between 1 and 1000")
    return {"events": v.get_events(from_seq, limit)}

@app.post("/call/send")
async def send_call(call: Call):
    v = _require_vault()
    call_hash = call.hash_hex
    existing = v.receipts.get(call_hash)
    if existing and existing.sequence is not None:
        # Already executed; replays would only fail the nonce check
        return existing.to_dict()
    v.receipts.add_pending(call_hash)
    try:
        receipt = v.apply_call(call)
    except ValidationError as e:
        v.receipts.mark_failed(call_hash, e)
        raise HTTPException(status_code=400, detail=str(e))

    return receipt.to_dict()

@app.get("/call/{call_hash}/receipt")
async def get_call_receipt(call_hash: str):
    v = _require_vault()
    receipt = v.receipts.get(call_hash)
    if not receipt:
        raise HTTPException(status_code=404, detail="Call not found")
    return receipt.to_dict()

@app.get("/metrics")
async def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    from ..observability.metrics import metrics_registry, update_metrics

    update_metrics(_require_vault())
    return Response(
        content=generate_latest(metrics_registry),
        media_type=CONTENT_TYPE_LATEST
    )

def start_rpc_server(vault_instance: Vault, host: str = "0.0.0.0", port: int = 8000):
    global vault
    vault = vault_instance
    import uvicorn
    uvicorn.run(app, host=host, port=port)
