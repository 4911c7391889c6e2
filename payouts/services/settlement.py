"""Settlement of disbursed payouts once the payment rail reports an outcome."""

from datetime import datetime

import structlog
from sqlalchemy.orm import Session

from db.enums import DisbursementOutcome, PayoutStatus
from db.models import Payouts
from payouts.services._helpers import utc_now
from payouts.services.bonus import BonusTierTracker
from payouts.services.errors import InvalidPayoutTransitionError, PayoutNotFoundError
from payouts.services.ledger import EarningLedger
from payouts.services.schemas.results import SettlementResult

logger = structlog.get_logger(__name__)


class PayoutSettlementService:
    """Moves a payout to COMPLETED or FAILED and settles what it claimed.

    A failed payout keeps its earnings and bonuses attached; statuses never
    move backwards, so they cannot be claimed a second time.
    """

    def __init__(
        self,
        session: Session,
        ledger: EarningLedger | None = None,
        bonus_tracker: BonusTierTracker | None = None,
    ) -> None:
        self.session: Session = session
        self.bonus_tracker: BonusTierTracker = bonus_tracker or (
            ledger.bonus_tracker if ledger is not None else BonusTierTracker(session)
        )
        self.ledger: EarningLedger = ledger or EarningLedger(session, self.bonus_tracker)

    def mark_payout_complete(
        self,
        payout_id: str,
        outcome: DisbursementOutcome,
        reference: str | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> SettlementResult:
        payout: Payouts | None = self.session.get(Payouts, payout_id)
        if payout is None:
            raise PayoutNotFoundError(f"Payout {payout_id} not found")

        target: PayoutStatus = (
            PayoutStatus.COMPLETED
            if outcome is DisbursementOutcome.SUCCESS
            else PayoutStatus.FAILED
        )
        if not payout.status.can_advance_to(target):
            raise InvalidPayoutTransitionError(
                f"Payout {payout_id} is {payout.status.value}, cannot move to {target.value}"
            )

        now = now or utc_now()
        if target is PayoutStatus.FAILED:
            return self._fail(payout, reason, now)

        with self.session.begin_nested():
            payout.status = PayoutStatus.COMPLETED
            payout.completed_at = now
            if reference:
                payout.external_reference = reference
            self.session.flush()

            earnings_settled: int = self.ledger.mark_paid(payout.id, now)
            bonuses_settled: int = self.bonus_tracker.mark_bonuses_paid(payout.id, now)
            period_reset: bool = False
            if bonuses_settled:
                period_reset = self.bonus_tracker.reset_period(payout.creator_id, now)

        logger.info(
            "payout_completed",
            payout_id=payout.id,
            creator_id=payout.creator_id,
            total_amount=str(payout.total_amount),
            earnings=earnings_settled,
            bonuses=bonuses_settled,
            bonus_period_reset=period_reset,
        )
        return SettlementResult(
            payout_id=payout.id,
            status=payout.status,
            earnings_settled=earnings_settled,
            bonuses_settled=bonuses_settled,
            bonus_period_reset=period_reset,
        )

    def _fail(self, payout: Payouts, reason: str | None, now: datetime) -> SettlementResult:
        payout.status = PayoutStatus.FAILED
        payout.completed_at = now
        payout.failure_reason = reason or "Disbursement failed"
        self.session.flush()

        logger.warning(
            "payout_failed",
            payout_id=payout.id,
            creator_id=payout.creator_id,
            reason=payout.failure_reason,
        )
        return SettlementResult(
            payout_id=payout.id,
            status=payout.status,
            earnings_settled=0,
            bonuses_settled=0,
            bonus_period_reset=False,
        )
