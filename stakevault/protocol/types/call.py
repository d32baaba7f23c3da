from pydantic import BaseModel
from typing import Optional
from ..crypto.hash import sha256_hex
from ..crypto.keys import sign as crypto_sign
from .common import CallType

class Call(BaseModel):
    """Signed request submitted to the node on behalf of from_address."""
    call_type: CallType
    from_address: str
    to_address: Optional[str] = None   # TRANSFER recipient / APPROVE spender
    amount: int = 0                    # in minimal units (10^-18 STV)
    staking_id: int = 0                # UNSTAKE / REDEEM target
    nonce: int
    signature: str = ""  # hex (r,s), default empty
    pub_key: str = ""    # hex public key of sender

    def hash(self) -> str:
        to_addr = self.to_address if self.to_address else ""

        payload_str = (
            self.call_type.value
            + "|" + self.from_address
            + "|" + to_addr
            + "|" + str(self.amount)
            + "|" + str(self.staking_id)
            + "|" + str(self.nonce)
            + "|" + self.pub_key
        )
        return sha256_hex(payload_str.encode("utf-8"))

    @property
    def hash_hex(self) -> str:
        return self.hash()

    def sign(self, priv_key_bytes: bytes):
        """Signs the call hash."""
        msg_hash = bytes.fromhex(self.hash())
        self.signature = crypto_sign(msg_hash, priv_key_bytes).hex()
