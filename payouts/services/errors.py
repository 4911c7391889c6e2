"""Shared exception hierarchy for payout services."""

from db.enums import PayoutBlockedReason


class PayoutEngineError(Exception):
    """Base exception for the payout engine."""


# ── Ledger ────────────────────────────────────────────────────────────────────


class InvalidAmountError(PayoutEngineError):
    """Sale or earning amount is not positive."""


class PersistenceError(PayoutEngineError):
    """Datastore write failed. Fatal to the enclosing operation."""


# ── Bonus tiers ───────────────────────────────────────────────────────────────


class InvalidTierTableError(PayoutEngineError, ValueError):
    """Configured bonus tier table is malformed."""


# ── Batch ─────────────────────────────────────────────────────────────────────


class ConcurrencyConflictError(PayoutEngineError):
    """Rows were claimed by another run between selection and claim."""


class PayoutBlockedError(PayoutEngineError):
    """Creator cannot be paid out right now. Reported, not fatal to a batch."""

    def __init__(self, creator_id: str, reason: PayoutBlockedReason) -> None:
        super().__init__(f"Payout blocked for creator {creator_id}: {reason.value}")
        self.creator_id: str = creator_id
        self.reason: PayoutBlockedReason = reason


class NoClaimableEarningsError(PayoutEngineError):
    """Manual payout requested for a creator with nothing claimable."""


# ── Settlement ────────────────────────────────────────────────────────────────


class PayoutNotFoundError(PayoutEngineError):
    """Requested payout does not exist."""


class InvalidPayoutTransitionError(PayoutEngineError):
    """Payout status change not allowed from its current status."""


# ── Disbursement ──────────────────────────────────────────────────────────────


class DisbursementError(PayoutEngineError):
    """Hand-off to the payment-rail collaborator failed."""
