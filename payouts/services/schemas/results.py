"""Result dataclasses returned by service operations."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from db.enums import PayoutBlockedReason, PayoutReason, PayoutStatus
from db.models import BonusPayouts, Earnings, Payouts, Transactions
from payouts.services._helpers import money_sum


@dataclass(frozen=True)
class EligibilityWindow:
    eligible_at: datetime
    locked_until: datetime


@dataclass
class ClaimableEarnings:
    forced: list[Earnings]
    eligible: list[Earnings]


@dataclass
class BonusUpdate:
    tier_changed: bool
    bonus_earned: Decimal
    new_tier: int
    new_sales: Decimal
    bonus_payout_id: str | None = None


@dataclass
class EarningRecorded:
    earning: Earnings
    created: bool
    bonus: BonusUpdate | None = None


@dataclass
class SaleRecorded:
    transaction: Transactions
    earning: Earnings
    created: bool
    bonus: BonusUpdate | None = None


@dataclass
class PayoutIntent:
    creator_id: str
    reason: PayoutReason
    earnings: list[Earnings]
    bonuses: list[BonusPayouts]
    minimum_payout: Decimal
    payout_id: str | None = None

    @property
    def earnings_amount(self) -> Decimal:
        return money_sum(e.net_amount for e in self.earnings)

    @property
    def bonus_amount(self) -> Decimal:
        return money_sum(b.bonus_amount for b in self.bonuses)

    @property
    def total_amount(self) -> Decimal:
        return self.earnings_amount + self.bonus_amount


@dataclass
class BlockedCreator:
    creator_id: str
    reason: PayoutBlockedReason


@dataclass
class RunFailure:
    creator_id: str
    error: str


@dataclass
class BatchBuildResult:
    payouts: list[Payouts] = field(default_factory=list)
    blocked: list[BlockedCreator] = field(default_factory=list)
    failures: list[RunFailure] = field(default_factory=list)


@dataclass
class PayoutRunStats:
    run_id: str
    processed_count: int
    total_amount: Decimal
    failures: list[RunFailure]
    blocked: list[BlockedCreator]
    payout_ids: list[str]


@dataclass
class SettlementResult:
    payout_id: str
    status: PayoutStatus
    earnings_settled: int
    bonuses_settled: int
    bonus_period_reset: bool
