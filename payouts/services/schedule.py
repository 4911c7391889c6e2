"""Payout calendar: bi-monthly payout dates and earning hold windows.

Payouts run on the 15th and the 30th of each month. For months shorter than
30 days the projected second date is the month end, but the trigger itself
only fires on the 15th and 30th; earnings missed that way go out on the next run.
"""

from calendar import monthrange
from datetime import UTC, date, datetime, time, timedelta

from payouts.services.schemas.results import EligibilityWindow

FIRST_PAYOUT_DAY: int = 15
SECOND_PAYOUT_DAY: int = 30

DEFAULT_ELIGIBILITY_DAYS: int = 15
DEFAULT_LOCK_DAYS: int = 45


def compute_eligibility(
    earned_at: datetime,
    eligibility_days: int = DEFAULT_ELIGIBILITY_DAYS,
    lock_days: int = DEFAULT_LOCK_DAYS,
) -> EligibilityWindow:
    """Return when an earning becomes eligible and when its lock expires."""
    if eligibility_days <= 0:
        raise ValueError("eligibility_days must be positive")
    if lock_days <= eligibility_days:
        raise ValueError("lock_days must be greater than eligibility_days")
    return EligibilityWindow(
        eligible_at=earned_at + timedelta(days=eligibility_days),
        locked_until=earned_at + timedelta(days=lock_days),
    )


def next_payout_date(now: date) -> date:
    """Projected payout date following ``now`` (accepts a date or datetime)."""
    if now.day < FIRST_PAYOUT_DAY:
        return date(now.year, now.month, FIRST_PAYOUT_DAY)
    if now.day < SECOND_PAYOUT_DAY:
        last_day: int = monthrange(now.year, now.month)[1]
        return date(now.year, now.month, min(SECOND_PAYOUT_DAY, last_day))
    if now.month == 12:
        return date(now.year + 1, 1, FIRST_PAYOUT_DAY)
    return date(now.year, now.month + 1, FIRST_PAYOUT_DAY)


def is_payout_day(day: date) -> bool:
    return day.day in (FIRST_PAYOUT_DAY, SECOND_PAYOUT_DAY)


def payout_cutoff(day: date) -> datetime:
    """Midnight UTC at the start of a payout date."""
    return datetime.combine(day, time.min, tzinfo=UTC)
