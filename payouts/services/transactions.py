"""Sale intake: persists a confirmed sale and records its earning."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.enums import TransactionStatus
from db.models import Transactions
from payouts.services._helpers import to_money, utc_now
from payouts.services.errors import InvalidAmountError, PersistenceError
from payouts.services.ledger import EarningLedger
from payouts.services.schemas.results import EarningRecorded, SaleRecorded

logger = structlog.get_logger(__name__)


@dataclass
class SaleEvent:
    creator_id: str
    gross_amount: Decimal
    platform_fee: Decimal
    creator_payout: Decimal
    is_commissionable: bool = True
    external_action_id: str | None = None
    occurred_at: datetime | None = None


class SaleRecorder:
    def __init__(self, session: Session, ledger: EarningLedger | None = None) -> None:
        self.session: Session = session
        self.ledger: EarningLedger = ledger or EarningLedger(session)

    def get_by_external_id(self, external_action_id: str) -> Transactions | None:
        stmt: Select[tuple[Transactions]] = select(Transactions).where(
            Transactions.external_action_id == external_action_id
        )
        return self.session.scalar(stmt)

    def confirm_sale(self, event: SaleEvent) -> SaleRecorded:
        """Store the transaction and its earning. Re-delivered events are no-ops."""
        gross: Decimal = to_money(event.gross_amount)
        payout: Decimal = to_money(event.creator_payout)
        if gross <= 0:
            raise InvalidAmountError(f"Sale amount must be positive, got {gross}")
        if payout <= 0:
            raise InvalidAmountError(f"Creator payout must be positive, got {payout}")

        if event.external_action_id:
            existing: Transactions | None = self.get_by_external_id(event.external_action_id)
            if existing is not None:
                return self._already_recorded(existing)

        occurred_at: datetime = event.occurred_at or utc_now()
        transaction: Transactions = Transactions(
            creator_id=event.creator_id,
            external_action_id=event.external_action_id,
            gross_amount=gross,
            platform_fee=to_money(event.platform_fee),
            creator_payout=payout,
            is_commissionable=event.is_commissionable,
            status=TransactionStatus.CONFIRMED,
            created_at=occurred_at,
        )
        try:
            with self.session.begin_nested():
                self.session.add(transaction)
                self.session.flush()
        except IntegrityError as e:
            # Same event delivered concurrently.
            if event.external_action_id:
                existing = self.get_by_external_id(event.external_action_id)
                if existing is not None:
                    return self._already_recorded(existing)
            raise PersistenceError(f"Could not store sale for creator {event.creator_id}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not store sale for creator {event.creator_id}") from e

        logger.info(
            "sale_confirmed",
            transaction_id=transaction.id,
            creator_id=transaction.creator_id,
            gross_amount=str(gross),
            creator_payout=str(payout),
            commissionable=transaction.is_commissionable,
        )
        recorded: EarningRecorded = self.ledger.record_earning(transaction, occurred_at)
        return SaleRecorded(
            transaction=transaction,
            earning=recorded.earning,
            created=True,
            bonus=recorded.bonus,
        )

    def _already_recorded(self, transaction: Transactions) -> SaleRecorded:
        logger.info(
            "sale_already_confirmed",
            transaction_id=transaction.id,
            external_action_id=transaction.external_action_id,
        )
        # Earning may be missing if an earlier attempt failed after the insert.
        recorded: EarningRecorded = self.ledger.record_earning(
            transaction, transaction.created_at
        )
        return SaleRecorded(
            transaction=transaction,
            earning=recorded.earning,
            created=False,
            bonus=recorded.bonus,
        )
