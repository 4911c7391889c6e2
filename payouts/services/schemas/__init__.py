"""Shared dataclasses for payout services."""

from payouts.services.schemas.results import (
    BatchBuildResult,
    BlockedCreator,
    BonusUpdate,
    ClaimableEarnings,
    EarningRecorded,
    EligibilityWindow,
    PayoutIntent,
    PayoutRunStats,
    RunFailure,
    SaleRecorded,
    SettlementResult,
)

__all__ = [
    # Ledger
    "ClaimableEarnings",
    "EarningRecorded",
    "EligibilityWindow",
    "SaleRecorded",
    # Bonus
    "BonusUpdate",
    # Batch / scheduler
    "BatchBuildResult",
    "BlockedCreator",
    "PayoutIntent",
    "PayoutRunStats",
    "RunFailure",
    # Settlement
    "SettlementResult",
]
