from pydantic import BaseModel, ConfigDict
from .common import RecordStatus
from ..crypto.addresses import ZERO_ADDRESS

class StakingRecord(BaseModel):
    """A single deposit held in custody."""
    model_config = ConfigDict(frozen=True)

    owner: str              # Depositor address, immutable
    amount: int             # Token units in custody, 0 only for the sentinel
    redeemable_time: int = 0  # 0 = not unstaked, otherwise unix seconds

    @classmethod
    def empty(cls) -> 'StakingRecord':
        """Zeroed sentinel returned for absent or redeemed ids."""
        return cls(owner=ZERO_ADDRESS, amount=0, redeemable_time=0)

    @property
    def exists(self) -> bool:
        return self.amount > 0

    @property
    def status(self) -> RecordStatus:
        if not self.exists:
            return RecordStatus.ABSENT
        if self.redeemable_time == 0:
            return RecordStatus.ACTIVE
        return RecordStatus.UNSTAKED
