"""
Error taxonomy for the staking and token ledgers.

Every error aborts the whole operation; nothing is retried internally.
"""
from ...protocol.types.common import ProtocolError


class StakingError(ProtocolError):
    """Base class for staking ledger failures."""
    default_message = ""

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


class InvalidAmount(StakingError):
    default_message = "Staking: amount must be greater than 0"


class NotOwner(StakingError):
    """
    Caller does not own the deposit, it does not exist, or it was redeemed.

    The three cases share one public type and message so non-owners learn
    nothing about existence. `reason` is for logs only.
    """
    default_message = "Staking: not owner"

    def __init__(self, reason: str = "wrong_owner"):
        super().__init__()
        self.reason = reason


class AlreadyUnstaked(StakingError):
    default_message = "Staking: already unstaked"


class NotUnstaked(StakingError):
    default_message = "Staking: not unstaked"


class NotRedeemable(StakingError):
    default_message = "Staking: not redeemable"


class ReentrantCall(StakingError):
    default_message = "ReentrancyGuard: reentrant call"


class InvariantViolation(StakingError):
    default_message = "Staking: custody balance does not match deposits"


class ArithmeticOverflow(ProtocolError):
    pass


class TokenError(ProtocolError):
    pass


class InsufficientBalance(TokenError):
    def __init__(self, message: str = "ERC20: transfer amount exceeds balance"):
        super().__init__(message)


class InsufficientAllowance(TokenError):
    def __init__(self, message: str = "ERC20: insufficient allowance"):
        super().__init__(message)


class InvalidTransfer(TokenError):
    pass
