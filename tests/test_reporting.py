"""Tests for payouts.services.reporting."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from config import PayoutPolicySettings
from db.enums import DisbursementOutcome, PayoutStatus
from db.models import Earnings, PaymentAccounts, Transactions
from payouts.services.batch import PayoutBatchBuilder
from payouts.services.ledger import EarningLedger
from payouts.services.reporting import PayoutReportingService
from payouts.services.scheduler import PayoutScheduler
from payouts.services.settlement import PayoutSettlementService

NOW: datetime = datetime(2026, 1, 20, 9, 0, tzinfo=UTC)


def _seed_account(
    session: Session, creator_id: str = "creator-a", minimum: str | None = "25.00"
) -> None:
    session.add(
        PaymentAccounts(
            creator_id=creator_id,
            preferred_method="BANK_TRANSFER",
            minimum_payout=Decimal(minimum) if minimum is not None else None,
            payee_reference="acct-1",
            is_active=True,
        )
    )
    session.flush()


def _seed_earning(
    session: Session,
    ledger: EarningLedger,
    amount: str,
    earned_at: datetime,
    creator_id: str = "creator-a",
) -> Earnings:
    t: Transactions = Transactions(
        creator_id=creator_id,
        gross_amount=Decimal(amount),
        platform_fee=Decimal("0.00"),
        creator_payout=Decimal(amount),
        is_commissionable=False,
        created_at=earned_at,
    )
    session.add(t)
    session.flush()
    return ledger.record_earning(t, earned_at).earning


def _reporting(session: Session, policy: PayoutPolicySettings) -> PayoutReportingService:
    return PayoutReportingService(session, policy)


class TestCreatorPayoutStatus:
    def test_amounts_are_kept_separate(
        self, session: Session, ledger: EarningLedger, policy: PayoutPolicySettings
    ) -> None:
        _seed_account(session)
        _seed_earning(session, ledger, "10.00", NOW - timedelta(days=2))
        _seed_earning(session, ledger, "20.00", NOW - timedelta(days=20))
        _seed_earning(session, ledger, "5.00", NOW - timedelta(days=50))

        status = _reporting(session, policy).get_creator_payout_status("creator-a", NOW)

        summary = status["summary"]
        assert summary["locked_amount"] == "10.00"
        assert summary["eligible_amount"] == "20.00"
        assert summary["forced_amount"] == "5.00"
        assert summary["pending_amount"] == "0.00"
        assert summary["below_threshold"] is False
        assert summary["will_get_paid_next"] is True
        assert len(status["earnings"]["locked"]) == 1
        assert len(status["earnings"]["eligible"]) == 2

    def test_below_threshold_not_paid_next(
        self, session: Session, ledger: EarningLedger, policy: PayoutPolicySettings
    ) -> None:
        _seed_account(session)
        _seed_earning(session, ledger, "20.00", datetime(2025, 12, 31, 9, tzinfo=UTC))
        # Eligible Feb 2, after the Jan 30 payout.
        _seed_earning(session, ledger, "10.00", datetime(2026, 1, 18, 9, tzinfo=UTC))

        summary = _reporting(session, policy).get_creator_payout_status("creator-a", NOW)[
            "summary"
        ]

        assert summary["below_threshold"] is True
        assert summary["minimum_payout"] == "25.00"
        assert summary["next_payout_date"] == "2026-01-30"
        assert summary["will_get_paid_next"] is False

    def test_projects_earnings_maturing_before_next_payout(
        self, session: Session, ledger: EarningLedger, policy: PayoutPolicySettings
    ) -> None:
        _seed_account(session)
        _seed_earning(session, ledger, "20.00", datetime(2025, 12, 31, 9, tzinfo=UTC))
        # Eligible Jan 25, before the Jan 30 payout.
        _seed_earning(session, ledger, "10.00", datetime(2026, 1, 10, 9, tzinfo=UTC))

        summary = _reporting(session, policy).get_creator_payout_status("creator-a", NOW)[
            "summary"
        ]

        assert summary["below_threshold"] is True
        assert summary["will_get_paid_next"] is True

    def test_no_destination_never_paid_next(
        self, session: Session, ledger: EarningLedger, policy: PayoutPolicySettings
    ) -> None:
        _seed_earning(session, ledger, "500.00", NOW - timedelta(days=20))

        summary = _reporting(session, policy).get_creator_payout_status("creator-a", NOW)[
            "summary"
        ]

        assert summary["has_payment_destination"] is False
        assert summary["will_get_paid_next"] is False
        assert summary["minimum_payout"] == "25.00"

    def test_unset_account_minimum_uses_policy_default(
        self, session: Session, ledger: EarningLedger, policy: PayoutPolicySettings
    ) -> None:
        strict = policy.model_copy(update={"default_minimum_payout": Decimal("40.00")})
        _seed_account(session, minimum=None)
        _seed_earning(session, ledger, "30.00", NOW - timedelta(days=20))

        summary = _reporting(session, strict).get_creator_payout_status("creator-a", NOW)[
            "summary"
        ]

        assert summary["minimum_payout"] == "40.00"
        assert summary["below_threshold"] is True

    def test_pending_and_completed_payouts(
        self, session: Session, ledger: EarningLedger, policy: PayoutPolicySettings
    ) -> None:
        _seed_account(session)
        _seed_earning(session, ledger, "30.00", NOW - timedelta(days=40))
        builder = PayoutBatchBuilder(session, ledger=ledger, policy=policy)
        scheduler = PayoutScheduler(session, builder=builder)
        first = scheduler.run_scheduled_batch(NOW - timedelta(days=5))
        PayoutSettlementService(session, ledger=ledger).mark_payout_complete(
            first.payout_ids[0], DisbursementOutcome.SUCCESS, now=NOW - timedelta(days=4)
        )
        _seed_earning(session, ledger, "40.00", NOW - timedelta(days=16))
        scheduler.run_scheduled_batch(NOW)

        status = _reporting(session, policy).get_creator_payout_status("creator-a", NOW)

        assert status["summary"]["pending_amount"] == "40.00"
        assert status["summary"]["eligible_amount"] == "0.00"
        [pending] = status["payouts"]["pending"]
        assert pending["status"] == PayoutStatus.PROCESSING.value
        assert pending["earning_count"] == 1
        assert pending["bonus_count"] == 0
        [completed] = status["payouts"]["completed"]
        assert completed["id"] == first.payout_ids[0]
        assert completed["completed_at"] is not None


class TestAllPendingPayouts:
    def test_lists_open_payouts_only(
        self, session: Session, ledger: EarningLedger, policy: PayoutPolicySettings
    ) -> None:
        _seed_account(session, "creator-a")
        _seed_account(session, "creator-b")
        _seed_earning(session, ledger, "30.00", NOW - timedelta(days=20), "creator-a")
        _seed_earning(session, ledger, "35.00", NOW - timedelta(days=20), "creator-b")
        builder = PayoutBatchBuilder(session, ledger=ledger, policy=policy)
        stats = PayoutScheduler(session, builder=builder).run_scheduled_batch(NOW)
        by_creator = dict(zip(["creator-a", "creator-b"], stats.payout_ids))
        PayoutSettlementService(session, ledger=ledger).mark_payout_complete(
            by_creator["creator-a"], DisbursementOutcome.SUCCESS, now=NOW
        )

        pending = _reporting(session, policy).get_all_pending_payouts()

        assert [p["creator_id"] for p in pending] == ["creator-b"]
        assert pending[0]["total_amount"] == "35.00"

    def test_empty(self, session: Session, policy: PayoutPolicySettings) -> None:
        assert _reporting(session, policy).get_all_pending_payouts() == []
