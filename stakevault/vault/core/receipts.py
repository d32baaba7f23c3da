"""
Call receipt tracking.

Stores the outcome of every call the node has processed for querying.
"""
from dataclasses import dataclass
from typing import Any, Optional, Dict
import time
import logging
from threading import RLock

logger = logging.getLogger(__name__)


@dataclass
class CallReceipt:
    """
    Call receipt.

    Attributes:
        call_hash: Call hash
        status: 'pending', 'confirmed' or 'failed'
        sequence: Position of the call in the node's execution order (None if pending)
        result: Operation result (staking id, redeemable time, amount...)
        timestamp: When receipt was last updated (unix timestamp)
        error: Error message if the call failed (None otherwise)
        error_type: Exception class name if the call failed
    """
    call_hash: str
    status: str  # 'pending', 'confirmed', 'failed'
    sequence: Optional[int] = None
    result: Any = None
    timestamp: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    def to_dict(self) -> dict:
        """Convert receipt to dictionary for API response."""
        return {
            "call_hash": self.call_hash,
            "status": self.status,
            "sequence": self.sequence,
            "result": self.result,
            "timestamp": self.timestamp,
            "error": self.error,
            "error_type": self.error_type,
        }


class CallReceiptStore:
    """
    In-memory store for call receipts.

    Thread-safe storage with automatic cleanup of old receipts.
    """

    def __init__(self, max_receipts: int = 10000):
        self.receipts: Dict[str, CallReceipt] = {}
        self.max_receipts = max_receipts
        self.lock = RLock()

    def add_pending(self, call_hash: str) -> CallReceipt:
        with self.lock:
            existing = self.receipts.get(call_hash)
            # Executed calls keep their outcome; rejected ones may be resubmitted
            if existing and existing.sequence is not None:
                return existing

            receipt = CallReceipt(call_hash=call_hash, status='pending')
            self._store(receipt)
            logger.debug(f"Added pending receipt: {call_hash[:16]}...")
            return receipt

    def mark_confirmed(self, call_hash: str, sequence: int, result: Any = None) -> CallReceipt:
        with self.lock:
            receipt = self.receipts.get(call_hash)
            if not receipt:
                receipt = CallReceipt(call_hash=call_hash, status='confirmed')
                self._store(receipt)

            receipt.status = 'confirmed'
            receipt.sequence = sequence
            receipt.result = result
            receipt.error = None
            receipt.error_type = None
            receipt.timestamp = int(time.time())

            logger.debug(f"Marked confirmed: {call_hash[:16]}... at sequence {sequence}")
            return receipt

    def mark_failed(self, call_hash: str, error: Exception, sequence: Optional[int] = None) -> CallReceipt:
        """
        Mark call as failed.

        Args:
            call_hash: Call hash
            error: The exception that aborted the call; its message is kept verbatim
            sequence: Position in execution order if the call consumed a nonce
        """
        with self.lock:
            receipt = self.receipts.get(call_hash)
            if not receipt:
                receipt = CallReceipt(call_hash=call_hash, status='failed')
                self._store(receipt)

            receipt.status = 'failed'
            receipt.sequence = sequence
            receipt.error = str(error)
            receipt.error_type = type(error).__name__
            receipt.timestamp = int(time.time())

            logger.debug(f"Marked failed: {call_hash[:16]}... - {error}")
            return receipt

    def get(self, call_hash: str) -> Optional[CallReceipt]:
        with self.lock:
            return self.receipts.get(call_hash)

    def count(self, status: str) -> int:
        with self.lock:
            return sum(1 for r in self.receipts.values() if r.status == status)

    def _store(self, receipt: CallReceipt) -> None:
        self.receipts[receipt.call_hash] = receipt
        if len(self.receipts) > self.max_receipts:
            self._cleanup_old_receipts()

    def _cleanup_old_receipts(self) -> None:
        """
        Remove oldest receipts to stay under max_receipts limit.

        Removes 10% of oldest receipts (at least one) when limit is exceeded.
        """
        num_to_remove = max(1, len(self.receipts) // 10)

        # Sort by timestamp (oldest first)
        sorted_receipts = sorted(
            self.receipts.items(),
            key=lambda x: x[1].timestamp
        )

        for call_hash, _ in sorted_receipts[:num_to_remove]:
            del self.receipts[call_hash]

        logger.info(f"Cleaned up {num_to_remove} old receipts (total: {len(self.receipts)})")

    def clear(self) -> None:
        """Clear all receipts (for testing)."""
        with self.lock:
            self.receipts.clear()
            logger.debug("Cleared all receipts")
