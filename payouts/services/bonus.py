"""Volume bonus tiers: per-creator period sales tracking and tier-crossing awards.

Each creator has one tracker holding commissionable sales for the current
bonus period. Crossing a tier threshold for the first time in a period creates
a BonusPayout for that tier's flat bonus, which the batch builder later folds
into the creator's next payout. The period resets once those bonuses are paid.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import BonusTierConfig, get_settings
from db.enums import BonusPayoutStatus, PayoutStatus
from db.models import BonusPayouts, BonusTrackers, Payouts
from payouts.services._helpers import to_money, utc_now
from payouts.services._types import (
    BonusPayoutDict,
    BonusStatisticsDict,
    BonusStatusDict,
    BonusTierDict,
    BonusTierInfo,
)
from payouts.services.errors import InvalidAmountError, InvalidTierTableError
from payouts.services.schedule import next_payout_date, payout_cutoff
from payouts.services.schemas.results import BonusUpdate

logger = structlog.get_logger(__name__)

RECENT_BONUS_LIMIT: int = 10


@dataclass(frozen=True, slots=True)
class BonusTier:
    tier: int
    threshold: Decimal
    bonus: Decimal

    def to_dict(self) -> BonusTierDict:
        return BonusTierDict(tier=self.tier, threshold=str(self.threshold), bonus=str(self.bonus))


class BonusTierTable:
    """Ordered (threshold, bonus) pairs. Tier 0 must start at zero sales."""

    def __init__(self, tiers: Sequence[BonusTier]) -> None:
        if not tiers:
            raise InvalidTierTableError("Bonus tier table is empty")
        if tiers[0].threshold != 0:
            raise InvalidTierTableError("First bonus tier must have threshold 0")
        for lower, higher in zip(tiers, tiers[1:]):
            if higher.threshold <= lower.threshold:
                raise InvalidTierTableError(
                    f"Tier {higher.tier} threshold must exceed tier {lower.tier} threshold"
                )
            if higher.tier <= lower.tier:
                raise InvalidTierTableError("Tier numbers must be strictly ascending")
        if any(t.bonus < 0 for t in tiers):
            raise InvalidTierTableError("Bonus amounts cannot be negative")
        self._tiers: tuple[BonusTier, ...] = tuple(tiers)

    @classmethod
    def from_config(cls, configs: Sequence[BonusTierConfig]) -> "BonusTierTable":
        return cls(
            [
                BonusTier(tier=c.tier, threshold=Decimal(c.threshold), bonus=to_money(c.bonus))
                for c in configs
            ]
        )

    @property
    def tiers(self) -> tuple[BonusTier, ...]:
        return self._tiers

    def get(self, tier_number: int) -> BonusTier | None:
        for tier in self._tiers:
            if tier.tier == tier_number:
                return tier
        return None

    def tier_for_sales(self, period_sales: Decimal) -> BonusTier:
        """Highest tier whose threshold is at or below the period's sales."""
        reached: BonusTier = self._tiers[0]
        for tier in self._tiers:
            if period_sales >= tier.threshold:
                reached = tier
        return reached

    def next_tier(self, period_sales: Decimal) -> BonusTier | None:
        for tier in self._tiers:
            if period_sales < tier.threshold:
                return tier
        return None


def _bonus_payout_dict(b: BonusPayouts) -> BonusPayoutDict:
    return BonusPayoutDict(
        id=b.id,
        tier_achieved=b.tier_achieved,
        bonus_amount=str(b.bonus_amount),
        sales_volume_at_award=str(b.sales_volume_at_award),
        status=b.status.value,
        available_at=b.available_at.isoformat(),
        payout_id=b.payout_id,
    )


class BonusTierTracker:
    """Tracks commissionable sales volume and awards tier-crossing bonuses."""

    def __init__(self, session: Session, tiers: BonusTierTable | None = None) -> None:
        self.session: Session = session
        self.tiers: BonusTierTable = tiers or BonusTierTable.from_config(
            get_settings().bonus.tiers
        )

    # ------------------------------------------------------------------
    # Trackers
    # ------------------------------------------------------------------

    def get_tracker(self, creator_id: str) -> BonusTrackers | None:
        stmt: Select[tuple[BonusTrackers]] = select(BonusTrackers).where(
            BonusTrackers.creator_id == creator_id
        )
        return self.session.scalar(stmt)

    def get_or_create_tracker(self, creator_id: str, now: datetime | None = None) -> BonusTrackers:
        tracker: BonusTrackers | None = self.get_tracker(creator_id)
        if tracker is not None:
            return tracker

        now = now or utc_now()
        try:
            with self.session.begin_nested():
                tracker = BonusTrackers(
                    creator_id=creator_id,
                    current_period_start=now,
                    current_period_sales=Decimal(0),
                    current_tier=0,
                    current_tier_bonus=Decimal(0),
                    total_commissionable_sales=Decimal(0),
                    total_bonuses_earned=Decimal(0),
                    is_pending_payout=False,
                    next_payout_date=next_payout_date(now),
                    created_at=now,
                    updated_at=now,
                )
                self.session.add(tracker)
                self.session.flush()
        except IntegrityError:
            # Another sale created it first.
            tracker = self.get_tracker(creator_id)
            if tracker is None:
                raise
            return tracker

        logger.info("bonus_tracker_created", creator_id=creator_id)
        return tracker

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def record_commissionable_sale(
        self,
        creator_id: str,
        amount: Decimal,
        now: datetime | None = None,
    ) -> BonusUpdate:
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(f"Commissionable sale amount must be positive, got {amount}")
        now = now or utc_now()
        tracker: BonusTrackers = self.get_or_create_tracker(creator_id, now)

        # Increment in the database so concurrent sales never lose an update.
        row = self.session.execute(
            update(BonusTrackers)
            .where(BonusTrackers.id == tracker.id)
            .values(
                current_period_sales=BonusTrackers.current_period_sales + amount,
                total_commissionable_sales=BonusTrackers.total_commissionable_sales + amount,
                updated_at=now,
            )
            .returning(
                BonusTrackers.current_period_sales,
                BonusTrackers.current_tier,
                BonusTrackers.current_period_start,
            )
        ).one()
        new_sales: Decimal = to_money(row.current_period_sales)
        current_tier: int = row.current_tier
        reached: BonusTier = self.tiers.tier_for_sales(new_sales)

        if reached.tier <= current_tier:
            return BonusUpdate(
                tier_changed=False,
                bonus_earned=Decimal(0),
                new_tier=current_tier,
                new_sales=new_sales,
            )

        # Only the caller that moves the tier forward awards its bonus.
        won = self.session.execute(
            update(BonusTrackers)
            .where(
                BonusTrackers.id == tracker.id,
                BonusTrackers.current_tier < reached.tier,
            )
            .values(
                current_tier=reached.tier,
                current_tier_bonus=reached.bonus,
                total_bonuses_earned=BonusTrackers.total_bonuses_earned + reached.bonus,
                is_pending_payout=True,
                last_bonus_earned_at=now,
                next_payout_date=next_payout_date(now),
            )
            .returning(BonusTrackers.id)
        ).first()
        if won is None:
            logger.info(
                "bonus_tier_already_advanced",
                creator_id=creator_id,
                tier=reached.tier,
            )
            return BonusUpdate(
                tier_changed=False,
                bonus_earned=Decimal(0),
                new_tier=current_tier,
                new_sales=new_sales,
            )

        bonus_payout: BonusPayouts = BonusPayouts(
            creator_id=creator_id,
            bonus_tracker_id=tracker.id,
            tier_achieved=reached.tier,
            bonus_amount=reached.bonus,
            sales_volume_at_award=new_sales,
            period_start=row.current_period_start,
            period_end=now,
            status=BonusPayoutStatus.EARNED,
            available_at=payout_cutoff(next_payout_date(now)),
            created_at=now,
        )
        self.session.add(bonus_payout)
        self.session.flush()

        logger.info(
            "bonus_tier_reached",
            creator_id=creator_id,
            tier=reached.tier,
            bonus=str(reached.bonus),
            period_sales=str(new_sales),
            available_at=bonus_payout.available_at.isoformat(),
        )
        return BonusUpdate(
            tier_changed=True,
            bonus_earned=reached.bonus,
            new_tier=reached.tier,
            new_sales=new_sales,
            bonus_payout_id=bonus_payout.id,
        )

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def list_claimable_bonuses(
        self, now: datetime, creator_id: str | None = None
    ) -> list[BonusPayouts]:
        stmt: Select[tuple[BonusPayouts]] = (
            select(BonusPayouts)
            .where(
                BonusPayouts.status == BonusPayoutStatus.EARNED,
                BonusPayouts.available_at <= now,
                BonusPayouts.payout_id.is_(None),
            )
            .order_by(BonusPayouts.creator_id, BonusPayouts.tier_achieved)
        )
        if creator_id is not None:
            stmt = stmt.where(BonusPayouts.creator_id == creator_id)
        return list(self.session.scalars(stmt).all())

    def claim_bonuses(
        self,
        bonus_payout_ids: Sequence[str],
        payout_id: str,
        now: datetime | None = None,
    ) -> int:
        """Attach unclaimed bonuses to a payout. Returns how many were claimed."""
        if not bonus_payout_ids:
            return 0
        claimed = self.session.execute(
            update(BonusPayouts)
            .where(
                BonusPayouts.id.in_(bonus_payout_ids),
                BonusPayouts.status == BonusPayoutStatus.EARNED,
                BonusPayouts.payout_id.is_(None),
            )
            .values(payout_id=payout_id, claimed_at=now or utc_now())
            .returning(BonusPayouts.id)
        ).all()
        return len(claimed)

    def claimed_total(self, payout_id: str) -> Decimal:
        stmt: Select[tuple[BonusPayouts]] = select(BonusPayouts).where(
            BonusPayouts.payout_id == payout_id
        )
        return to_money(sum((b.bonus_amount for b in self.session.scalars(stmt)), Decimal(0)))

    def mark_bonuses_paid(self, payout_id: str, now: datetime) -> int:
        paid = self.session.execute(
            update(BonusPayouts)
            .where(
                BonusPayouts.payout_id == payout_id,
                BonusPayouts.status == BonusPayoutStatus.EARNED,
            )
            .values(status=BonusPayoutStatus.PAID, paid_at=now)
            .returning(BonusPayouts.id)
        ).all()
        return len(paid)

    # ------------------------------------------------------------------
    # Period reset
    # ------------------------------------------------------------------

    def has_outstanding_bonuses(self, creator_id: str) -> bool:
        """Earned bonuses still on their way to the creator.

        Bonuses left on a FAILED payout are never paid and do not count.
        """
        stmt = (
            select(BonusPayouts.id)
            .outerjoin(Payouts, BonusPayouts.payout_id == Payouts.id)
            .where(
                BonusPayouts.creator_id == creator_id,
                BonusPayouts.status == BonusPayoutStatus.EARNED,
                or_(BonusPayouts.payout_id.is_(None), Payouts.status != PayoutStatus.FAILED),
            )
            .limit(1)
        )
        return self.session.scalar(stmt) is not None

    def reset_period(self, creator_id: str, now: datetime | None = None) -> bool:
        """Start a new bonus period. Deferred while earned bonuses remain unpaid."""
        tracker: BonusTrackers | None = self.get_tracker(creator_id)
        if tracker is None:
            return False
        if self.has_outstanding_bonuses(creator_id):
            logger.info("bonus_period_reset_deferred", creator_id=creator_id)
            return False

        now = now or utc_now()
        tracker.current_period_start = now
        tracker.current_period_sales = Decimal(0)
        tracker.current_tier = 0
        tracker.current_tier_bonus = Decimal(0)
        tracker.is_pending_payout = False
        tracker.next_payout_date = next_payout_date(now)
        tracker.updated_at = now
        self.session.flush()

        logger.info("bonus_period_reset", creator_id=creator_id)
        return True

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def _recent_bonus_payouts(self, creator_id: str | None = None) -> list[BonusPayoutDict]:
        stmt: Select[tuple[BonusPayouts]] = (
            select(BonusPayouts)
            .order_by(BonusPayouts.created_at.desc())
            .limit(RECENT_BONUS_LIMIT)
        )
        if creator_id is not None:
            stmt = stmt.where(BonusPayouts.creator_id == creator_id)
        return [_bonus_payout_dict(b) for b in self.session.scalars(stmt)]

    def get_status(self, creator_id: str, now: datetime | None = None) -> BonusStatusDict:
        now = now or utc_now()
        tracker: BonusTrackers | None = self.get_tracker(creator_id)
        sales: Decimal = to_money(tracker.current_period_sales) if tracker else Decimal("0.00")
        tier_number: int = tracker.current_tier if tracker else 0

        current: BonusTier = self.tiers.get(tier_number) or self.tiers.tier_for_sales(sales)
        upcoming: BonusTier | None = self.tiers.next_tier(sales)
        progress: Decimal = (
            (sales / upcoming.threshold * 100).quantize(Decimal("0.1"))
            if upcoming is not None
            else Decimal("100.0")
        )

        return BonusStatusDict(
            creator_id=creator_id,
            current_period_start=(
                tracker.current_period_start.isoformat() if tracker else None
            ),
            current_period_sales=str(sales),
            current_tier=tier_number,
            total_commissionable_sales=str(
                to_money(tracker.total_commissionable_sales) if tracker else Decimal("0.00")
            ),
            total_bonuses_earned=str(
                to_money(tracker.total_bonuses_earned) if tracker else Decimal("0.00")
            ),
            is_pending_payout=tracker.is_pending_payout if tracker else False,
            next_payout_date=(
                tracker.next_payout_date if tracker else next_payout_date(now)
            ).isoformat(),
            tier_info=BonusTierInfo(
                current=current.to_dict(),
                next=upcoming.to_dict() if upcoming else None,
                all_tiers=[t.to_dict() for t in self.tiers.tiers],
                progress_to_next=str(progress),
            ),
            recent_bonus_payouts=self._recent_bonus_payouts(creator_id),
        )

    def get_statistics(self) -> BonusStatisticsDict:
        bonuses, volume, count = self.session.execute(
            select(
                func.sum(BonusTrackers.total_bonuses_earned),
                func.sum(BonusTrackers.total_commissionable_sales),
                func.count(BonusTrackers.id),
            )
        ).one()
        distribution = self.session.execute(
            select(BonusTrackers.current_tier, func.count(BonusTrackers.id)).group_by(
                BonusTrackers.current_tier
            )
        ).all()
        return BonusStatisticsDict(
            total_bonuses_earned=str(to_money(bonuses or 0)),
            total_commissionable_sales=str(to_money(volume or 0)),
            active_trackers=count or 0,
            tier_distribution={tier: n for tier, n in distribution},
            recent_bonus_payouts=self._recent_bonus_payouts(),
        )
