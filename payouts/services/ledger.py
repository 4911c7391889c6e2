"""Earning ledger: one earning per confirmed transaction, held through lock windows."""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import Select, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import PayoutPolicySettings, get_settings
from db.enums import EarningStatus
from db.models import Earnings, Transactions
from payouts.services._helpers import to_money, utc_now
from payouts.services.bonus import BonusTierTracker
from payouts.services.errors import InvalidAmountError, PersistenceError
from payouts.services.schedule import compute_eligibility
from payouts.services.schemas.results import (
    BonusUpdate,
    ClaimableEarnings,
    EarningRecorded,
    EligibilityWindow,
)

logger = structlog.get_logger(__name__)


def _sources_for(target: EarningStatus) -> list[EarningStatus]:
    """Statuses the transition table allows to move to ``target``."""
    return [s for s in EarningStatus if s.can_advance_to(target)]


class EarningLedger:
    """Creates earnings and moves them through LOCKED -> PENDING_PAYOUT -> PAID."""

    def __init__(
        self,
        session: Session,
        bonus_tracker: BonusTierTracker | None = None,
        policy: PayoutPolicySettings | None = None,
    ) -> None:
        self.session: Session = session
        self.bonus_tracker: BonusTierTracker = bonus_tracker or BonusTierTracker(session)
        self.policy: PayoutPolicySettings = policy or get_settings().policy

    def get_for_transaction(self, transaction_id: str) -> Earnings | None:
        stmt: Select[tuple[Earnings]] = select(Earnings).where(
            Earnings.transaction_id == transaction_id
        )
        return self.session.scalar(stmt)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_earning(
        self, transaction: Transactions, earned_at: datetime | None = None
    ) -> EarningRecorded:
        existing: Earnings | None = self.get_for_transaction(transaction.id)
        if existing is not None:
            logger.info(
                "earning_already_recorded",
                transaction_id=transaction.id,
                earning_id=existing.id,
            )
            return EarningRecorded(earning=existing, created=False)

        net_amount: Decimal = to_money(transaction.creator_payout)
        if net_amount <= 0:
            raise InvalidAmountError(f"Creator payout must be positive, got {net_amount}")

        earned_at = earned_at or utc_now()
        window: EligibilityWindow = compute_eligibility(
            earned_at, self.policy.eligibility_days, self.policy.lock_days
        )
        earning: Earnings = Earnings(
            creator_id=transaction.creator_id,
            transaction_id=transaction.id,
            gross_amount=to_money(transaction.gross_amount),
            platform_fee=to_money(transaction.platform_fee),
            net_amount=net_amount,
            is_commissionable=transaction.is_commissionable,
            earned_at=earned_at,
            eligible_at=window.eligible_at,
            locked_until=window.locked_until,
            status=EarningStatus.LOCKED,
            created_at=earned_at,
        )
        try:
            with self.session.begin_nested():
                self.session.add(earning)
                self.session.flush()
        except SQLAlchemyError as e:
            logger.exception(
                "earning_persist_failed",
                transaction_id=transaction.id,
                creator_id=transaction.creator_id,
            )
            raise PersistenceError(
                f"Could not record earning for transaction {transaction.id}"
            ) from e

        logger.info(
            "earning_recorded",
            earning_id=earning.id,
            creator_id=earning.creator_id,
            net_amount=str(net_amount),
            eligible_at=window.eligible_at.isoformat(),
            locked_until=window.locked_until.isoformat(),
        )

        bonus: BonusUpdate | None = None
        if transaction.is_commissionable:
            bonus = self._track_bonus(transaction, earned_at)
        return EarningRecorded(earning=earning, created=True, bonus=bonus)

    def _track_bonus(self, transaction: Transactions, now: datetime) -> BonusUpdate | None:
        """Bonus tracking is best-effort: failures never undo the earning."""
        try:
            with self.session.begin_nested():
                return self.bonus_tracker.record_commissionable_sale(
                    transaction.creator_id, transaction.gross_amount, now
                )
        except Exception:
            logger.exception(
                "bonus_tracking_failed",
                creator_id=transaction.creator_id,
                transaction_id=transaction.id,
            )
            return None

    # ------------------------------------------------------------------
    # Claimable queries
    # ------------------------------------------------------------------

    def list_claimable(self, now: datetime, creator_id: str | None = None) -> ClaimableEarnings:
        """Forced: lock expired. Eligible: past eligibility, still inside the lock."""
        base: Select[tuple[Earnings]] = (
            select(Earnings)
            .where(Earnings.status == EarningStatus.LOCKED)
            .order_by(Earnings.creator_id, Earnings.earned_at)
        )
        if creator_id is not None:
            base = base.where(Earnings.creator_id == creator_id)

        forced_stmt = base.where(Earnings.locked_until <= now)
        eligible_stmt = base.where(Earnings.eligible_at <= now, Earnings.locked_until > now)
        return ClaimableEarnings(
            forced=list(self.session.scalars(forced_stmt).all()),
            eligible=list(self.session.scalars(eligible_stmt).all()),
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def claim(self, earning_ids: Sequence[str], payout_id: str) -> int:
        """Attach still-LOCKED earnings to a payout. Returns how many were claimed."""
        if not earning_ids:
            return 0
        claimed = self.session.execute(
            update(Earnings)
            .where(
                Earnings.id.in_(earning_ids),
                Earnings.status.in_(_sources_for(EarningStatus.PENDING_PAYOUT)),
                Earnings.payout_id.is_(None),
            )
            .values(status=EarningStatus.PENDING_PAYOUT, payout_id=payout_id)
            .returning(Earnings.id)
        ).all()
        return len(claimed)

    def claimed_total(self, payout_id: str) -> Decimal:
        stmt: Select[tuple[Earnings]] = select(Earnings).where(Earnings.payout_id == payout_id)
        return to_money(sum((e.net_amount for e in self.session.scalars(stmt)), Decimal(0)))

    def mark_paid(self, payout_id: str, now: datetime) -> int:
        paid = self.session.execute(
            update(Earnings)
            .where(
                Earnings.payout_id == payout_id,
                Earnings.status.in_(_sources_for(EarningStatus.PAID)),
            )
            .values(status=EarningStatus.PAID, paid_at=now)
            .returning(Earnings.id)
        ).all()
        return len(paid)
