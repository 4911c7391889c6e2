"""Tests for payouts.services.bonus."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from config import BonusTierConfig
from db.enums import BonusPayoutStatus, PayoutReason, PayoutStatus
from db.models import BonusPayouts, BonusTrackers, Payouts
from payouts.services.bonus import BonusTier, BonusTierTable, BonusTierTracker
from payouts.services.errors import InvalidAmountError, InvalidTierTableError

NOW: datetime = datetime(2026, 1, 10, 9, 0, tzinfo=UTC)


def _seed_payout(session: Session, creator_id: str) -> Payouts:
    p: Payouts = Payouts(
        creator_id=creator_id,
        total_amount=Decimal("0.00"),
        status=PayoutStatus.PENDING,
        reason=PayoutReason.MANUAL_ADMIN,
        payment_method="BANK_TRANSFER",
        scheduled_at=NOW,
    )
    session.add(p)
    session.flush()
    return p


def _bonuses(session: Session, creator_id: str) -> list[BonusPayouts]:
    return list(
        session.scalars(
            select(BonusPayouts)
            .where(BonusPayouts.creator_id == creator_id)
            .order_by(BonusPayouts.tier_achieved)
        ).all()
    )


class TestBonusTierTable:
    def test_rejects_empty(self) -> None:
        with pytest.raises(InvalidTierTableError):
            BonusTierTable([])

    def test_first_threshold_must_be_zero(self) -> None:
        with pytest.raises(ValueError):
            BonusTierTable([BonusTier(tier=1, threshold=Decimal("100"), bonus=Decimal("1"))])

    def test_thresholds_must_ascend(self) -> None:
        with pytest.raises(InvalidTierTableError):
            BonusTierTable(
                [
                    BonusTier(tier=0, threshold=Decimal("0"), bonus=Decimal("0")),
                    BonusTier(tier=1, threshold=Decimal("500"), bonus=Decimal("5")),
                    BonusTier(tier=2, threshold=Decimal("500"), bonus=Decimal("10")),
                ]
            )

    def test_tier_for_sales(self, tiers: BonusTierTable) -> None:
        assert tiers.tier_for_sales(Decimal("0")).tier == 0
        assert tiers.tier_for_sales(Decimal("4999.99")).tier == 0
        assert tiers.tier_for_sales(Decimal("5000")).tier == 1
        assert tiers.tier_for_sales(Decimal("12000")).tier == 2
        assert tiers.tier_for_sales(Decimal("99999")).tier == 3

    def test_next_tier(self, tiers: BonusTierTable) -> None:
        upcoming = tiers.next_tier(Decimal("6000"))
        assert upcoming is not None
        assert upcoming.tier == 2
        assert tiers.next_tier(Decimal("20000")) is None

    def test_from_config(self) -> None:
        table = BonusTierTable.from_config(
            [
                BonusTierConfig(tier=0, threshold=Decimal("0"), bonus=Decimal("0")),
                BonusTierConfig(tier=1, threshold=Decimal("1000"), bonus=Decimal("10.005")),
            ]
        )
        assert table.tiers[1].bonus == Decimal("10.01")


class TestRecordCommissionableSale:
    def test_first_sale_creates_tracker(
        self, session: Session, bonus_tracker: BonusTierTracker
    ) -> None:
        update = bonus_tracker.record_commissionable_sale("creator-a", Decimal("100"), NOW)
        assert update.tier_changed is False
        assert update.new_sales == Decimal("100.00")
        tracker: BonusTrackers | None = bonus_tracker.get_tracker("creator-a")
        assert tracker is not None
        assert tracker.next_payout_date.isoformat() == "2026-01-15"

    def test_tier_crossed_on_third_sale(
        self, session: Session, bonus_tracker: BonusTierTracker
    ) -> None:
        first = bonus_tracker.record_commissionable_sale("creator-a", Decimal("2000"), NOW)
        second = bonus_tracker.record_commissionable_sale("creator-a", Decimal("2000"), NOW)
        third = bonus_tracker.record_commissionable_sale("creator-a", Decimal("2000"), NOW)

        assert (first.tier_changed, second.tier_changed) == (False, False)
        assert third.tier_changed is True
        assert third.new_tier == 1
        assert third.bonus_earned == Decimal("50.00")
        assert third.new_sales == Decimal("6000.00")

        bonuses = _bonuses(session, "creator-a")
        assert len(bonuses) == 1
        assert bonuses[0].id == third.bonus_payout_id
        assert bonuses[0].status == BonusPayoutStatus.EARNED
        assert bonuses[0].available_at == datetime(2026, 1, 15, tzinfo=UTC)
        assert bonuses[0].payout_id is None

    def test_no_second_award_until_next_threshold(
        self, session: Session, bonus_tracker: BonusTierTracker
    ) -> None:
        bonus_tracker.record_commissionable_sale("creator-a", Decimal("6000"), NOW)
        below = bonus_tracker.record_commissionable_sale("creator-a", Decimal("3999.99"), NOW)
        assert below.tier_changed is False
        assert below.new_tier == 1

        crossed = bonus_tracker.record_commissionable_sale("creator-a", Decimal("0.01"), NOW)
        assert crossed.tier_changed is True
        assert crossed.new_tier == 2
        assert crossed.bonus_earned == Decimal("100.00")
        assert [b.tier_achieved for b in _bonuses(session, "creator-a")] == [1, 2]

    def test_jump_awards_highest_tier_only(
        self, session: Session, bonus_tracker: BonusTierTracker
    ) -> None:
        update = bonus_tracker.record_commissionable_sale("creator-a", Decimal("12000"), NOW)
        assert update.new_tier == 2
        assert update.bonus_earned == Decimal("100.00")
        bonuses = _bonuses(session, "creator-a")
        assert [b.tier_achieved for b in bonuses] == [2]

    def test_tier_never_decreases(
        self, session: Session, bonus_tracker: BonusTierTracker
    ) -> None:
        seen: list[int] = []
        for _ in range(8):
            seen.append(
                bonus_tracker.record_commissionable_sale("creator-a", Decimal("1500"), NOW).new_tier
            )
        assert seen == sorted(seen)
        assert seen[-1] == 2

    def test_rejects_non_positive_amount(self, bonus_tracker: BonusTierTracker) -> None:
        with pytest.raises(InvalidAmountError):
            bonus_tracker.record_commissionable_sale("creator-a", Decimal("0"), NOW)
        assert bonus_tracker.get_tracker("creator-a") is None


class TestClaimsAndReset:
    def test_claim_is_exclusive(self, session: Session, bonus_tracker: BonusTierTracker) -> None:
        bonus_tracker.record_commissionable_sale("creator-a", Decimal("5000"), NOW)
        ids: list[str] = [b.id for b in bonus_tracker.list_claimable_bonuses(NOW + timedelta(days=5))]
        assert len(ids) == 1

        first = _seed_payout(session, "creator-a")
        second = _seed_payout(session, "creator-a")
        assert bonus_tracker.claim_bonuses(ids, first.id, NOW) == 1
        assert bonus_tracker.claim_bonuses(ids, second.id, NOW) == 0
        assert bonus_tracker.claimed_total(first.id) == Decimal("50.00")
        assert bonus_tracker.list_claimable_bonuses(NOW + timedelta(days=5)) == []

    def test_not_claimable_before_available(self, bonus_tracker: BonusTierTracker) -> None:
        bonus_tracker.record_commissionable_sale("creator-a", Decimal("5000"), NOW)
        assert bonus_tracker.list_claimable_bonuses(NOW) == []

    def test_reset_deferred_while_bonus_unpaid(
        self, session: Session, bonus_tracker: BonusTierTracker
    ) -> None:
        bonus_tracker.record_commissionable_sale("creator-a", Decimal("5000"), NOW)
        assert bonus_tracker.reset_period("creator-a", NOW) is False
        tracker = bonus_tracker.get_tracker("creator-a")
        assert tracker is not None
        session.refresh(tracker)
        assert tracker.current_tier == 1

    def test_reset_after_bonus_paid(
        self, session: Session, bonus_tracker: BonusTierTracker
    ) -> None:
        bonus_tracker.record_commissionable_sale("creator-a", Decimal("5000"), NOW)
        payout = _seed_payout(session, "creator-a")
        ids = [b.id for b in _bonuses(session, "creator-a")]
        bonus_tracker.claim_bonuses(ids, payout.id, NOW)
        later: datetime = NOW + timedelta(days=6)
        assert bonus_tracker.mark_bonuses_paid(payout.id, later) == 1

        assert bonus_tracker.reset_period("creator-a", later) is True
        tracker = bonus_tracker.get_tracker("creator-a")
        assert tracker is not None
        session.refresh(tracker)
        assert tracker.current_period_sales == Decimal("0.00")
        assert tracker.current_tier == 0
        assert tracker.is_pending_payout is False
        assert tracker.total_commissionable_sales == Decimal("5000.00")
        assert tracker.total_bonuses_earned == Decimal("50.00")

        # New period awards tier 1 again.
        again = bonus_tracker.record_commissionable_sale("creator-a", Decimal("5000"), later)
        assert again.tier_changed is True
        assert again.new_tier == 1

    def test_reset_unknown_creator(self, bonus_tracker: BonusTierTracker) -> None:
        assert bonus_tracker.reset_period("nobody", NOW) is False


class TestViews:
    def test_status_without_tracker(self, bonus_tracker: BonusTierTracker) -> None:
        status = bonus_tracker.get_status("creator-new", NOW)
        assert status["current_tier"] == 0
        assert status["current_period_sales"] == "0.00"
        assert status["tier_info"]["next"] is not None
        assert status["tier_info"]["next"]["tier"] == 1
        assert status["next_payout_date"] == "2026-01-15"

    def test_status_progress(self, bonus_tracker: BonusTierTracker) -> None:
        bonus_tracker.record_commissionable_sale("creator-a", Decimal("6000"), NOW)
        status = bonus_tracker.get_status("creator-a", NOW)
        assert status["current_tier"] == 1
        assert status["tier_info"]["progress_to_next"] == "60.0"
        assert len(status["recent_bonus_payouts"]) == 1

    def test_statistics(self, bonus_tracker: BonusTierTracker) -> None:
        bonus_tracker.record_commissionable_sale("creator-a", Decimal("6000"), NOW)
        bonus_tracker.record_commissionable_sale("creator-b", Decimal("100"), NOW)
        stats = bonus_tracker.get_statistics()
        assert stats["active_trackers"] == 2
        assert stats["total_bonuses_earned"] == "50.00"
        assert stats["total_commissionable_sales"] == "6100.00"
        assert stats["tier_distribution"] == {0: 1, 1: 1}
