"""Read-only payout views for creator dashboards and admin screens."""

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from config import PayoutPolicySettings, get_settings
from db.enums import BonusPayoutStatus, EarningStatus, PayoutStatus
from db.models import BonusPayouts, Earnings, PaymentAccounts, Payouts
from payouts.services._helpers import money_sum, to_money, utc_now
from payouts.services._types import (
    CreatorEarningsBreakdown,
    CreatorPayoutsBreakdown,
    CreatorPayoutStatusDict,
    CreatorPayoutSummary,
    EarningDict,
    PayoutDict,
)
from payouts.services.schedule import next_payout_date, payout_cutoff

RECENT_PAYOUT_LIMIT: int = 10
OPEN_PAYOUT_STATUSES: tuple[PayoutStatus, ...] = tuple(
    s for s in PayoutStatus if not s.is_terminal
)


def _earning_dict(e: Earnings) -> EarningDict:
    return EarningDict(
        id=e.id,
        transaction_id=e.transaction_id,
        net_amount=str(e.net_amount),
        earned_at=e.earned_at.isoformat(),
        eligible_at=e.eligible_at.isoformat(),
        locked_until=e.locked_until.isoformat(),
        status=e.status.value,
        payout_id=e.payout_id,
    )


def _payout_dict(p: Payouts, earning_count: int = 0, bonus_count: int = 0) -> PayoutDict:
    return PayoutDict(
        id=p.id,
        creator_id=p.creator_id,
        total_amount=str(p.total_amount),
        earnings_amount=str(p.earnings_amount),
        bonus_amount=str(p.bonus_amount),
        status=p.status.value,
        reason=p.reason.value,
        payment_method=p.payment_method,
        currency=p.currency,
        scheduled_at=p.scheduled_at.isoformat(),
        completed_at=p.completed_at.isoformat() if p.completed_at else None,
        external_reference=p.external_reference,
        earning_count=earning_count,
        bonus_count=bonus_count,
    )


def _has_destination(account: PaymentAccounts | None) -> bool:
    return bool(account and account.is_active and (account.payee_reference or "").strip())


class PayoutReportingService:
    def __init__(self, session: Session, policy: PayoutPolicySettings | None = None) -> None:
        self.session: Session = session
        self.policy: PayoutPolicySettings = policy or get_settings().policy

    def _counts(self, payout_ids: Sequence[str]) -> tuple[dict[str, int], dict[str, int]]:
        if not payout_ids:
            return {}, {}
        earning_counts = self.session.execute(
            select(Earnings.payout_id, func.count(Earnings.id))
            .where(Earnings.payout_id.in_(payout_ids))
            .group_by(Earnings.payout_id)
        ).all()
        bonus_counts = self.session.execute(
            select(BonusPayouts.payout_id, func.count(BonusPayouts.id))
            .where(BonusPayouts.payout_id.in_(payout_ids))
            .group_by(BonusPayouts.payout_id)
        ).all()
        return dict(earning_counts), dict(bonus_counts)

    def _payout_dicts(self, payouts: Sequence[Payouts]) -> list[PayoutDict]:
        earning_counts, bonus_counts = self._counts([p.id for p in payouts])
        return [
            _payout_dict(p, earning_counts.get(p.id, 0), bonus_counts.get(p.id, 0))
            for p in payouts
        ]

    def get_creator_payout_status(
        self, creator_id: str, now: datetime | None = None
    ) -> CreatorPayoutStatusDict:
        """Dashboard view. Locked, eligible and pending amounts are never merged."""
        now = now or utc_now()
        account: PaymentAccounts | None = self.session.get(PaymentAccounts, creator_id)
        minimum: Decimal = to_money(
            account.minimum_payout
            if account and account.minimum_payout is not None
            else self.policy.default_minimum_payout
        )

        unclaimed: list[Earnings] = list(
            self.session.scalars(
                select(Earnings)
                .where(Earnings.creator_id == creator_id, Earnings.status == EarningStatus.LOCKED)
                .order_by(Earnings.earned_at)
            ).all()
        )
        locked = [e for e in unclaimed if e.eligible_at > now]
        eligible = [e for e in unclaimed if e.eligible_at <= now < e.locked_until]
        forced = [e for e in unclaimed if e.locked_until <= now]

        pending_payouts: list[Payouts] = list(
            self.session.scalars(
                select(Payouts)
                .where(Payouts.creator_id == creator_id, Payouts.status.in_(OPEN_PAYOUT_STATUSES))
                .order_by(Payouts.scheduled_at.desc())
            ).all()
        )
        completed_payouts: list[Payouts] = list(
            self.session.scalars(
                select(Payouts)
                .where(Payouts.creator_id == creator_id, Payouts.status == PayoutStatus.COMPLETED)
                .order_by(Payouts.completed_at.desc())
                .limit(RECENT_PAYOUT_LIMIT)
            ).all()
        )
        bonus_amount: Decimal = to_money(
            self.session.scalar(
                select(func.coalesce(func.sum(BonusPayouts.bonus_amount), 0)).where(
                    BonusPayouts.creator_id == creator_id,
                    BonusPayouts.status == BonusPayoutStatus.EARNED,
                    BonusPayouts.payout_id.is_(None),
                )
            )
            or 0
        )

        eligible_amount: Decimal = money_sum(e.net_amount for e in eligible)
        upcoming: date = next_payout_date(now)
        has_destination: bool = _has_destination(account)

        summary = CreatorPayoutSummary(
            locked_amount=str(money_sum(e.net_amount for e in locked)),
            eligible_amount=str(eligible_amount),
            forced_amount=str(money_sum(e.net_amount for e in forced)),
            pending_amount=str(money_sum(p.total_amount for p in pending_payouts)),
            bonus_amount=str(bonus_amount),
            minimum_payout=str(minimum),
            below_threshold=not forced and eligible_amount < minimum,
            has_payment_destination=has_destination,
            next_payout_date=upcoming.isoformat(),
            will_get_paid_next=has_destination
            and self._qualifies_by(unclaimed, payout_cutoff(upcoming), minimum),
        )
        return CreatorPayoutStatusDict(
            creator_id=creator_id,
            summary=summary,
            earnings=CreatorEarningsBreakdown(
                locked=[_earning_dict(e) for e in locked],
                eligible=[_earning_dict(e) for e in eligible + forced],
            ),
            payouts=CreatorPayoutsBreakdown(
                pending=self._payout_dicts(pending_payouts),
                completed=self._payout_dicts(completed_payouts),
            ),
        )

    @staticmethod
    def _qualifies_by(unclaimed: Sequence[Earnings], at: datetime, minimum: Decimal) -> bool:
        """Would the batch at ``at`` pick this creator up, assuming no new earnings."""
        if any(e.locked_until <= at for e in unclaimed):
            return True
        ready: Decimal = money_sum(e.net_amount for e in unclaimed if e.eligible_at <= at)
        return ready > 0 and ready >= minimum

    def get_all_pending_payouts(self) -> list[PayoutDict]:
        stmt: Select[tuple[Payouts]] = (
            select(Payouts)
            .where(Payouts.status.in_(OPEN_PAYOUT_STATUSES))
            .order_by(Payouts.scheduled_at.desc(), Payouts.creator_id)
        )
        return self._payout_dicts(list(self.session.scalars(stmt).all()))
