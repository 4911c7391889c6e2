"""Enumeration types for the Creator Payout Engine."""

from enum import Enum


class TransactionStatus(str, Enum):
    """Status of an ingested sale transaction."""

    CONFIRMED = "CONFIRMED"


class EarningStatus(str, Enum):
    """Lifecycle of a single earning. Only ever advances."""

    LOCKED = "LOCKED"
    PENDING_PAYOUT = "PENDING_PAYOUT"
    PAID = "PAID"

    def can_advance_to(self, target: "EarningStatus") -> bool:
        match self:
            case EarningStatus.LOCKED:
                return target is EarningStatus.PENDING_PAYOUT
            case EarningStatus.PENDING_PAYOUT:
                return target is EarningStatus.PAID
            case EarningStatus.PAID:
                return False


class BonusPayoutStatus(str, Enum):
    """Bonus payout status. A claimed bonus stays EARNED with payout_id set."""

    EARNED = "EARNED"
    PAID = "PAID"


class PayoutStatus(str, Enum):
    """Status of a payout aggregate."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PayoutStatus.COMPLETED, PayoutStatus.FAILED)

    def can_advance_to(self, target: "PayoutStatus") -> bool:
        match self:
            case PayoutStatus.PENDING:
                return target in (
                    PayoutStatus.PROCESSING,
                    PayoutStatus.COMPLETED,
                    PayoutStatus.FAILED,
                )
            case PayoutStatus.PROCESSING:
                return target in (PayoutStatus.COMPLETED, PayoutStatus.FAILED)
            case PayoutStatus.COMPLETED | PayoutStatus.FAILED:
                return False


class PayoutReason(str, Enum):
    """Why a payout was created."""

    FORCED_LOCK_EXPIRY = "FORCED_LOCK_EXPIRY"
    THRESHOLD_MET = "THRESHOLD_MET"
    MANUAL_ADMIN = "MANUAL_ADMIN"


class PayoutBlockedReason(str, Enum):
    """Why a creator was skipped by a batch run."""

    NO_PAYMENT_ACCOUNT = "NO_PAYMENT_ACCOUNT"
    PAYMENT_ACCOUNT_INACTIVE = "PAYMENT_ACCOUNT_INACTIVE"
    MISSING_PAYEE_REFERENCE = "MISSING_PAYEE_REFERENCE"


class DisbursementOutcome(str, Enum):
    """Result reported by the payment-rail collaborator."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class RunType(str, Enum):
    """Type of processing run."""

    SCHEDULED_PAYOUT = "SCHEDULED_PAYOUT"
    MANUAL_PAYOUT = "MANUAL_PAYOUT"


class RunStatus(str, Enum):
    """Status of a processing run."""

    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
