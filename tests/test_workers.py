"""Tests for the worker entry points."""

import argparse
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from db.enums import DisbursementOutcome, PayoutStatus
from db.models import PaymentAccounts, Payouts, ProcessingRuns
from payouts.services.transactions import SaleEvent, SaleRecorder
from worker import confirm_payout, manual_payout, run_payouts


def _use_session(monkeypatch: pytest.MonkeyPatch, module: object, session: Session) -> None:
    @contextmanager
    def _session() -> Generator[Session, None, None]:
        yield session
        session.flush()

    monkeypatch.setattr(module, "get_session", _session)


def _seed_creator(session: Session) -> None:
    session.add(
        PaymentAccounts(creator_id="creator-a", preferred_method="PAYPAL", payee_reference="pp-1")
    )
    session.flush()
    SaleRecorder(session).confirm_sale(
        SaleEvent(
            creator_id="creator-a",
            gross_amount=Decimal("60.00"),
            platform_fee=Decimal("12.00"),
            creator_payout=Decimal("48.00"),
            is_commissionable=False,
            occurred_at=datetime(2026, 1, 1, 10, tzinfo=UTC),
        )
    )


class TestRunPayouts:
    def test_skips_non_payout_day(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _fail() -> None:
            raise AssertionError("database should not be opened")

        monkeypatch.setattr(run_payouts, "get_session", _fail)
        run_payouts.main(["--date", "2026-01-16"])

    def test_runs_on_payout_day(self, monkeypatch: pytest.MonkeyPatch, session: Session) -> None:
        _seed_creator(session)
        _use_session(monkeypatch, run_payouts, session)

        run_payouts.main(["--date", "2026-01-30"])

        payout = session.scalars(select(Payouts)).one()
        assert payout.total_amount == Decimal("48.00")
        assert payout.status == PayoutStatus.PROCESSING
        run = session.scalars(select(ProcessingRuns)).one()
        assert run.started_at == datetime(2026, 1, 30, 9, tzinfo=UTC)

    def test_force_runs_any_day(self, monkeypatch: pytest.MonkeyPatch, session: Session) -> None:
        _seed_creator(session)
        _use_session(monkeypatch, run_payouts, session)

        run_payouts.main(["--date", "2026-02-28", "--force"])

        assert len(session.scalars(select(Payouts)).all()) == 1


class TestManualPayout:
    def test_exits_when_nothing_to_pay(
        self, monkeypatch: pytest.MonkeyPatch, session: Session
    ) -> None:
        _use_session(monkeypatch, manual_payout, session)
        with pytest.raises(SystemExit) as exc_info:
            manual_payout.main(["--creator", "creator-x", "--actor", "admin-1"])
        assert exc_info.value.code == 1


class TestConfirmPayout:
    def test_parse_outcome(self) -> None:
        assert confirm_payout.parse_outcome("success") is DisbursementOutcome.SUCCESS
        assert confirm_payout.parse_outcome("FAILED") is DisbursementOutcome.FAILED
        with pytest.raises(argparse.ArgumentTypeError):
            confirm_payout.parse_outcome("maybe")

    def test_settles_payout(self, monkeypatch: pytest.MonkeyPatch, session: Session) -> None:
        _seed_creator(session)
        _use_session(monkeypatch, run_payouts, session)
        _use_session(monkeypatch, confirm_payout, session)
        run_payouts.main(["--date", "2026-01-30"])
        payout = session.scalars(select(Payouts)).one()

        confirm_payout.main(["--payout-id", payout.id, "--outcome", "failed", "--reason", "closed"])

        assert payout.status == PayoutStatus.FAILED
        assert payout.failure_reason == "closed"
