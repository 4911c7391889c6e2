"""SQLAlchemy ORM models for the payout ledger."""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    MetaData,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from db.enums import (
    BonusPayoutStatus,
    EarningStatus,
    PayoutReason,
    PayoutStatus,
    RunStatus,
    RunType,
    TransactionStatus,
)

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

Money = Numeric(12, 2)


class UtcDateTime(TypeDecorator[datetime]):
    """Stores UTC as naive timestamps and hands back aware datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


def _status(enum_cls: type) -> Enum:
    return Enum(enum_cls, native_enum=False, length=32)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


def generate_uuid() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


class Transactions(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    creator_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    external_action_id: Mapped[str | None] = mapped_column(String(128), unique=True)
    gross_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    creator_payout: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_commissionable: Mapped[bool] = mapped_column(nullable=False, default=True)
    status: Mapped[TransactionStatus] = mapped_column(
        _status(TransactionStatus), nullable=False, default=TransactionStatus.CONFIRMED
    )
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)

    earning = relationship("Earnings", back_populates="transaction", uselist=False)


class Earnings(Base):
    __tablename__ = "earnings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    creator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_id: Mapped[str] = mapped_column(
        ForeignKey("transactions.id"), nullable=False, unique=True
    )
    gross_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    platform_fee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_commissionable: Mapped[bool] = mapped_column(nullable=False, default=True)
    earned_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    eligible_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    locked_until: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    status: Mapped[EarningStatus] = mapped_column(
        _status(EarningStatus), nullable=False, default=EarningStatus.LOCKED
    )
    payout_id: Mapped[str | None] = mapped_column(ForeignKey("payouts.id"))
    paid_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_earnings_status_locked_until", "status", "locked_until"),
        Index("ix_earnings_creator_status", "creator_id", "status"),
    )
    transaction = relationship("Transactions", back_populates="earning")
    payout = relationship("Payouts", back_populates="earnings")


class BonusTrackers(Base):
    __tablename__ = "bonus_trackers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    creator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    current_period_start: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    current_period_sales: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    current_tier: Mapped[int] = mapped_column(nullable=False, default=0)
    current_tier_bonus: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    total_commissionable_sales: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    total_bonuses_earned: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    is_pending_payout: Mapped[bool] = mapped_column(nullable=False, default=False)
    next_payout_date: Mapped[date] = mapped_column(nullable=False)
    last_bonus_earned_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)

    __table_args__ = (UniqueConstraint("creator_id"),)
    bonus_payouts = relationship(
        "BonusPayouts",
        back_populates="tracker",
        order_by="BonusPayouts.created_at.desc()",
    )


class BonusPayouts(Base):
    __tablename__ = "bonus_payouts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    creator_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    bonus_tracker_id: Mapped[str] = mapped_column(
        ForeignKey("bonus_trackers.id"), nullable=False
    )
    tier_achieved: Mapped[int] = mapped_column(nullable=False)
    bonus_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    sales_volume_at_award: Mapped[Decimal] = mapped_column(Money, nullable=False)
    period_start: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    status: Mapped[BonusPayoutStatus] = mapped_column(
        _status(BonusPayoutStatus), nullable=False, default=BonusPayoutStatus.EARNED
    )
    available_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    payout_id: Mapped[str | None] = mapped_column(ForeignKey("payouts.id"))
    claimed_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    paid_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)

    tracker = relationship("BonusTrackers", back_populates="bonus_payouts")
    payout = relationship("Payouts", back_populates="bonus_payouts")


class Payouts(Base):
    __tablename__ = "payouts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    creator_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    earnings_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bonus_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    status: Mapped[PayoutStatus] = mapped_column(
        _status(PayoutStatus), nullable=False, default=PayoutStatus.PENDING
    )
    reason: Mapped[PayoutReason] = mapped_column(_status(PayoutReason), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    scheduled_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    external_reference: Mapped[str | None] = mapped_column(String(128))
    failure_reason: Mapped[str | None] = mapped_column()
    processed_by: Mapped[str | None] = mapped_column(String(64))
    admin_notes: Mapped[str | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)

    earnings = relationship("Earnings", back_populates="payout", order_by="Earnings.earned_at")
    bonus_payouts = relationship(
        "BonusPayouts", back_populates="payout", order_by="BonusPayouts.tier_achieved"
    )


class PaymentAccounts(Base):
    __tablename__ = "payment_accounts"

    creator_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    preferred_method: Mapped[str] = mapped_column(String(32), nullable=False)
    # NULL defers to the policy's default minimum.
    minimum_payout: Mapped[Decimal | None] = mapped_column(Money)
    payee_reference: Mapped[str | None] = mapped_column(String(128))
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=utc_now)


class ProcessingRuns(Base):
    __tablename__ = "processing_runs"

    run_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    run_type: Mapped[RunType] = mapped_column(_status(RunType), nullable=False)
    status: Mapped[RunStatus] = mapped_column(
        _status(RunStatus), nullable=False, default=RunStatus.RUNNING
    )
    started_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime)
    triggered_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")
    records_processed: Mapped[int] = mapped_column(nullable=False, default=0)
    records_created: Mapped[int] = mapped_column(nullable=False, default=0)
    records_skipped: Mapped[int] = mapped_column(nullable=False, default=0)
    summary: Mapped[str | None] = mapped_column()
    error_details: Mapped[str | None] = mapped_column()
