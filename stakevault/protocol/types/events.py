"""
Notification payloads.

Deleted records are no longer queryable, so the ordered stream of these
events is the only way to rebuild a deposit's full history.
"""
from pydantic import BaseModel
from typing import ClassVar, Dict, Type

class Event(BaseModel):
    name: ClassVar[str] = ""

    def to_dict(self) -> dict:
        return {"name": self.name, **self.model_dump()}

class StakeEvent(Event):
    name: ClassVar[str] = "Stake"
    staking_id: int
    owner: str
    amount: int

class UnstakeEvent(Event):
    name: ClassVar[str] = "Unstake"
    staking_id: int
    redeemable_time: int

class RedeemEvent(Event):
    name: ClassVar[str] = "Redeem"
    staking_id: int

class TransferEvent(Event):
    name: ClassVar[str] = "Transfer"
    from_address: str
    to_address: str
    amount: int

class ApprovalEvent(Event):
    name: ClassVar[str] = "Approval"
    owner: str
    spender: str
    amount: int

EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.name: cls
    for cls in (StakeEvent, UnstakeEvent, RedeemEvent, TransferEvent, ApprovalEvent)
}

def event_from_dict(data: dict) -> Event:
    """Rebuilds a typed event from its stored dict form."""
    fields = dict(data)
    name = fields.pop("name", None)
    if name not in EVENT_TYPES:
        raise ValueError(f"Unknown event type: {name}")
    return EVENT_TYPES[name](**fields)
