from enum import Enum

class CallType(str, Enum):
    STAKE = "STAKE"
    UNSTAKE = "UNSTAKE"
    REDEEM = "REDEEM"

    # Token-side calls relayed by the node
    APPROVE = "APPROVE"
    TRANSFER = "TRANSFER"

class RecordStatus(str, Enum):
    ACTIVE = "active"       # staked, redeemable_time == 0
    UNSTAKED = "unstaked"   # cooling off, redeemable_time > 0
    REDEEMED = "redeemed"   # deleted after payout
    ABSENT = "absent"       # id never allocated

class ProtocolError(Exception):
    pass

class ValidationError(ProtocolError):
    pass
