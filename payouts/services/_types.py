"""Typed dicts for service-layer return values.

Keeps caller-facing methods explicit about their shape instead of returning bare dicts.
Amounts are rendered as strings so Decimal precision survives JSON encoding.
"""

from typing import TypedDict

# -- Ledger / payouts ------------------------------------------------------


class EarningDict(TypedDict):
    id: str
    transaction_id: str
    net_amount: str
    earned_at: str
    eligible_at: str
    locked_until: str
    status: str
    payout_id: str | None


class PayoutDict(TypedDict):
    id: str
    creator_id: str
    total_amount: str
    earnings_amount: str
    bonus_amount: str
    status: str
    reason: str
    payment_method: str
    currency: str
    scheduled_at: str
    completed_at: str | None
    external_reference: str | None
    earning_count: int
    bonus_count: int


class CreatorPayoutSummary(TypedDict):
    locked_amount: str
    eligible_amount: str
    forced_amount: str
    pending_amount: str
    bonus_amount: str
    minimum_payout: str
    below_threshold: bool
    has_payment_destination: bool
    next_payout_date: str
    will_get_paid_next: bool


class CreatorEarningsBreakdown(TypedDict):
    locked: list[EarningDict]
    eligible: list[EarningDict]


class CreatorPayoutsBreakdown(TypedDict):
    pending: list[PayoutDict]
    completed: list[PayoutDict]


class CreatorPayoutStatusDict(TypedDict):
    creator_id: str
    summary: CreatorPayoutSummary
    earnings: CreatorEarningsBreakdown
    payouts: CreatorPayoutsBreakdown


# -- Bonus tiers -----------------------------------------------------------


class BonusTierDict(TypedDict):
    tier: int
    threshold: str
    bonus: str


class BonusPayoutDict(TypedDict):
    id: str
    tier_achieved: int
    bonus_amount: str
    sales_volume_at_award: str
    status: str
    available_at: str
    payout_id: str | None


class BonusTierInfo(TypedDict):
    current: BonusTierDict
    next: BonusTierDict | None
    all_tiers: list[BonusTierDict]
    progress_to_next: str


class BonusStatusDict(TypedDict):
    creator_id: str
    current_period_start: str | None
    current_period_sales: str
    current_tier: int
    total_commissionable_sales: str
    total_bonuses_earned: str
    is_pending_payout: bool
    next_payout_date: str
    tier_info: BonusTierInfo
    recent_bonus_payouts: list[BonusPayoutDict]


class BonusStatisticsDict(TypedDict):
    total_bonuses_earned: str
    total_commissionable_sales: str
    active_trackers: int
    tier_distribution: dict[int, int]
    recent_bonus_payouts: list[BonusPayoutDict]


# -- Runs ------------------------------------------------------------------


class RunSummaryDict(TypedDict):
    processed_count: int
    total_amount: str
    failures: list[dict[str, str]]
    blocked: list[dict[str, str]]
