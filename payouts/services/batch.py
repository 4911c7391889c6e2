"""Payout batch builder: selects claimable earnings and materializes payouts.

Dual-rule policy:
  - forced: any earning past its 45-day lock is paid regardless of amount,
    and the creator's eligible earnings ride along;
  - threshold: eligible-only creators are paid once their eligible total
    reaches the creator's minimum payout.

Each creator is materialized and committed as its own transaction, so one
creator's failure never blocks the rest of the batch and a payout is durable
before anything hands it to the payment rail.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Protocol, TypeVar

import structlog
from sqlalchemy.orm import Session

from config import PayoutPolicySettings, get_settings
from db.enums import PayoutBlockedReason, PayoutReason, PayoutStatus
from db.models import PaymentAccounts, Payouts
from payouts.services._helpers import money_sum, to_money
from payouts.services.bonus import BonusTierTracker
from payouts.services.errors import (
    ConcurrencyConflictError,
    NoClaimableEarningsError,
    PayoutBlockedError,
)
from payouts.services.ledger import EarningLedger
from payouts.services.schemas.results import (
    BatchBuildResult,
    BlockedCreator,
    ClaimableEarnings,
    PayoutIntent,
    RunFailure,
)

logger = structlog.get_logger(__name__)


class _CreatorOwned(Protocol):
    creator_id: str


T = TypeVar("T", bound=_CreatorOwned)


def _group_by_creator(items: Iterable[T]) -> dict[str, list[T]]:
    grouped: dict[str, list[T]] = defaultdict(list)
    for item in items:
        grouped[item.creator_id].append(item)
    return grouped


class PayoutBatchBuilder:
    """Groups claimable earnings and bonuses into per-creator payouts."""

    def __init__(
        self,
        session: Session,
        ledger: EarningLedger | None = None,
        bonus_tracker: BonusTierTracker | None = None,
        policy: PayoutPolicySettings | None = None,
    ) -> None:
        self.session: Session = session
        self.policy: PayoutPolicySettings = policy or get_settings().policy
        self.bonus_tracker: BonusTierTracker = bonus_tracker or (
            ledger.bonus_tracker if ledger is not None else BonusTierTracker(session)
        )
        self.ledger: EarningLedger = ledger or EarningLedger(
            session, self.bonus_tracker, self.policy
        )

    # ------------------------------------------------------------------
    # Payment destinations
    # ------------------------------------------------------------------

    def get_payment_account(self, creator_id: str) -> PaymentAccounts | None:
        return self.session.get(PaymentAccounts, creator_id)

    def minimum_payout_for(self, account: PaymentAccounts | None) -> Decimal:
        if account is None or account.minimum_payout is None:
            return to_money(self.policy.default_minimum_payout)
        return to_money(account.minimum_payout)

    def require_destination(self, creator_id: str) -> PaymentAccounts:
        account: PaymentAccounts | None = self.get_payment_account(creator_id)
        if account is None:
            raise PayoutBlockedError(creator_id, PayoutBlockedReason.NO_PAYMENT_ACCOUNT)
        if not account.is_active:
            raise PayoutBlockedError(creator_id, PayoutBlockedReason.PAYMENT_ACCOUNT_INACTIVE)
        if not (account.payee_reference or "").strip():
            raise PayoutBlockedError(creator_id, PayoutBlockedReason.MISSING_PAYEE_REFERENCE)
        return account

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def collect_intents(self, now: datetime) -> list[PayoutIntent]:
        claimable: ClaimableEarnings = self.ledger.list_claimable(now)
        forced_by_creator = _group_by_creator(claimable.forced)
        eligible_by_creator = _group_by_creator(claimable.eligible)
        bonuses_by_creator = _group_by_creator(self.bonus_tracker.list_claimable_bonuses(now))

        intents: list[PayoutIntent] = []
        for creator_id in sorted(forced_by_creator.keys() | eligible_by_creator.keys()):
            forced = forced_by_creator.get(creator_id, [])
            eligible = eligible_by_creator.get(creator_id, [])
            minimum: Decimal = self.minimum_payout_for(self.get_payment_account(creator_id))

            if forced:
                reason = PayoutReason.FORCED_LOCK_EXPIRY
            elif money_sum(e.net_amount for e in eligible) >= minimum:
                reason = PayoutReason.THRESHOLD_MET
            else:
                logger.debug(
                    "below_minimum_payout",
                    creator_id=creator_id,
                    eligible_amount=str(money_sum(e.net_amount for e in eligible)),
                    minimum=str(minimum),
                )
                continue

            intents.append(
                PayoutIntent(
                    creator_id=creator_id,
                    reason=reason,
                    earnings=forced + eligible,
                    bonuses=bonuses_by_creator.get(creator_id, []),
                    minimum_payout=minimum,
                )
            )
        return intents

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def build_batch(self, now: datetime) -> BatchBuildResult:
        result: BatchBuildResult = BatchBuildResult()
        for intent in self.collect_intents(now):
            try:
                account: PaymentAccounts = self.require_destination(intent.creator_id)
                payout: Payouts = self.materialize(intent, account, now)
            except PayoutBlockedError as e:
                logger.warning("payout_blocked", creator_id=e.creator_id, reason=e.reason.value)
                result.blocked.append(BlockedCreator(creator_id=e.creator_id, reason=e.reason))
            except Exception as e:
                logger.exception("payout_unit_failed", creator_id=intent.creator_id)
                result.failures.append(RunFailure(creator_id=intent.creator_id, error=str(e)))
            else:
                intent.payout_id = payout.id
                result.payouts.append(payout)
        return result

    def build_for_creator(
        self,
        creator_id: str,
        now: datetime,
        processed_by: str | None = None,
        admin_notes: str | None = None,
    ) -> Payouts:
        """Manual payout: threshold ignored, any positive claimable amount qualifies."""
        account: PaymentAccounts = self.require_destination(creator_id)
        claimable: ClaimableEarnings = self.ledger.list_claimable(now, creator_id)
        intent: PayoutIntent = PayoutIntent(
            creator_id=creator_id,
            reason=PayoutReason.MANUAL_ADMIN,
            earnings=claimable.forced + claimable.eligible,
            bonuses=self.bonus_tracker.list_claimable_bonuses(now, creator_id),
            minimum_payout=self.minimum_payout_for(account),
        )
        if intent.total_amount <= 0:
            raise NoClaimableEarningsError(f"No earnings ready for payout for creator {creator_id}")
        payout: Payouts = self.materialize(
            intent, account, now, processed_by=processed_by, admin_notes=admin_notes
        )
        intent.payout_id = payout.id
        return payout

    def materialize(
        self,
        intent: PayoutIntent,
        account: PaymentAccounts,
        now: datetime,
        processed_by: str | None = None,
        admin_notes: str | None = None,
    ) -> Payouts:
        """Create the payout and claim its constituents, then commit them as one unit.

        A failure rolls back only this unit's SAVEPOINT; work already committed
        for other creators is untouched.
        """
        earning_ids: list[str] = [e.id for e in intent.earnings]
        bonus_ids: list[str] = [b.id for b in intent.bonuses]

        with self.session.begin_nested():
            payout: Payouts = Payouts(
                creator_id=intent.creator_id,
                total_amount=intent.total_amount,
                earnings_amount=intent.earnings_amount,
                bonus_amount=intent.bonus_amount,
                status=PayoutStatus.PENDING,
                reason=intent.reason,
                payment_method=account.preferred_method or self.policy.default_payment_method,
                currency=self.policy.currency,
                scheduled_at=now,
                processed_by=processed_by,
                admin_notes=admin_notes or f"Auto-generated payout - {intent.reason.value}",
                created_at=now,
            )
            self.session.add(payout)
            self.session.flush()

            claimed_earnings: int = self.ledger.claim(earning_ids, payout.id)
            claimed_bonuses: int = self.bonus_tracker.claim_bonuses(bonus_ids, payout.id, now)
            if claimed_earnings != len(earning_ids) or claimed_bonuses != len(bonus_ids):
                self._reconcile(payout, intent, claimed_earnings, claimed_bonuses)
        self.session.commit()

        logger.info(
            "payout_created",
            payout_id=payout.id,
            creator_id=payout.creator_id,
            reason=payout.reason.value,
            total_amount=str(payout.total_amount),
            earnings=len(earning_ids),
            bonuses=len(bonus_ids),
        )
        return payout

    def _reconcile(
        self,
        payout: Payouts,
        intent: PayoutIntent,
        claimed_earnings: int,
        claimed_bonuses: int,
    ) -> None:
        """Another run got some rows first: re-total from what this payout holds."""
        logger.warning(
            "claim_count_mismatch",
            payout_id=payout.id,
            creator_id=payout.creator_id,
            requested_earnings=len(intent.earnings),
            claimed_earnings=claimed_earnings,
            requested_bonuses=len(intent.bonuses),
            claimed_bonuses=claimed_bonuses,
        )
        if claimed_earnings == 0 and claimed_bonuses == 0:
            raise ConcurrencyConflictError(
                f"All items for creator {payout.creator_id} were claimed by another run"
            )

        earnings_amount: Decimal = self.ledger.claimed_total(payout.id)
        bonus_amount: Decimal = self.bonus_tracker.claimed_total(payout.id)
        if (
            intent.reason is PayoutReason.THRESHOLD_MET
            and earnings_amount < intent.minimum_payout
        ):
            raise ConcurrencyConflictError(
                f"Creator {payout.creator_id} fell below minimum payout after reconciliation"
            )

        payout.earnings_amount = earnings_amount
        payout.bonus_amount = bonus_amount
        payout.total_amount = earnings_amount + bonus_amount
        self.session.flush()
