"""Hand-off of materialized payouts to the payment-rail collaborator.

Moving money is outside this engine. A gateway only accepts a payout for
delivery and returns a reference; the final outcome arrives later through
``PayoutSettlementService.mark_payout_complete``.
"""

from typing import Protocol, runtime_checkable

import structlog

from db.models import PaymentAccounts, Payouts

logger = structlog.get_logger(__name__)


@runtime_checkable
class DisbursementGateway(Protocol):
    def submit(self, payout: Payouts, account: PaymentAccounts) -> str:
        """Queue a payout for delivery and return the rail's reference.

        Raises DisbursementError (or any exception) when the hand-off fails.
        """
        ...


class LoggingDisbursementGateway:
    """Records the hand-off without contacting a payment rail."""

    def submit(self, payout: Payouts, account: PaymentAccounts) -> str:
        reference: str = f"queued-{payout.id}"
        logger.info(
            "disbursement_queued",
            payout_id=payout.id,
            creator_id=payout.creator_id,
            amount=str(payout.total_amount),
            currency=payout.currency,
            method=payout.payment_method,
            payee_reference=account.payee_reference,
            reference=reference,
        )
        return reference
