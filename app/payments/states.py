"""
Payment transaction state machine.

    PENDING ──success──▶ SUCCESS ──refund(full)────▶ REFUNDED
       │                    └──────refund(partial)──▶ PARTIAL_REFUND
       └────failed───▶ FAILED
"""

from enum import Enum

from app.core.errors import InvalidState


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIAL_REFUND = "PARTIAL_REFUND"


class FeePaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.SUCCESS, TransactionStatus.FAILED},
    TransactionStatus.SUCCESS: {TransactionStatus.REFUNDED, TransactionStatus.PARTIAL_REFUND},
}

# Fee payment status that follows a transaction outcome
FEE_STATUS_FOR = {
    TransactionStatus.SUCCESS: FeePaymentStatus.COMPLETED,
    TransactionStatus.FAILED: FeePaymentStatus.FAILED,
}


def can_transition(current, target) -> bool:
    return TransactionStatus(target) in TRANSITIONS.get(TransactionStatus(current), set())


def ensure_transition(current, target) -> None:
    if not can_transition(current, target):
        raise InvalidState(f"Cannot move transaction from {current} to {target}")
