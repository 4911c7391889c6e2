"""Shared fixtures: in-memory SQLite DB with all tables."""

from collections.abc import Generator
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import PayoutPolicySettings
from db.connection import enable_sqlite_savepoints
from db.models import Base
from payouts.services.bonus import BonusTier, BonusTierTable, BonusTierTracker
from payouts.services.ledger import EarningLedger


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng: Engine = create_engine("sqlite:///:memory:", echo=False)
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def policy() -> PayoutPolicySettings:
    return PayoutPolicySettings(
        eligibility_days=15,
        lock_days=45,
        default_minimum_payout=Decimal("25.00"),
        default_payment_method="BANK_TRANSFER",
        currency="USD",
    )


@pytest.fixture()
def tiers() -> BonusTierTable:
    return BonusTierTable(
        [
            BonusTier(tier=0, threshold=Decimal("0"), bonus=Decimal("0.00")),
            BonusTier(tier=1, threshold=Decimal("5000"), bonus=Decimal("50.00")),
            BonusTier(tier=2, threshold=Decimal("10000"), bonus=Decimal("100.00")),
            BonusTier(tier=3, threshold=Decimal("20000"), bonus=Decimal("200.00")),
        ]
    )


@pytest.fixture()
def bonus_tracker(session: Session, tiers: BonusTierTable) -> BonusTierTracker:
    return BonusTierTracker(session, tiers)


@pytest.fixture()
def ledger(
    session: Session, bonus_tracker: BonusTierTracker, policy: PayoutPolicySettings
) -> EarningLedger:
    return EarningLedger(session, bonus_tracker, policy)
