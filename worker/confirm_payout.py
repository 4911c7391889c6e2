"""Worker: record the payment rail's outcome for a disbursed payout.

Usage:
    python -m worker.confirm_payout --payout-id <id> --outcome success --reference TX-991
    python -m worker.confirm_payout --payout-id <id> --outcome failed --reason "Account closed"
"""

import argparse

import structlog

from db.connection import get_session
from db.enums import DisbursementOutcome
from payouts.services.settlement import PayoutSettlementService

logger = structlog.get_logger(__name__)


def parse_outcome(raw: str) -> DisbursementOutcome:
    try:
        return DisbursementOutcome(raw.upper())
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid outcome '{raw}'. Expected success or failed"
        )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Settle a disbursed payout")
    parser.add_argument("--payout-id", "-p", required=True, help="Payout id")
    parser.add_argument(
        "--outcome", "-o", required=True, type=parse_outcome,
        help="success or failed",
    )
    parser.add_argument("--reference", "-r", help="Payment rail reference")
    parser.add_argument("--reason", help="Failure reason (failed outcome only)")
    args = parser.parse_args(argv)

    if args.reason and args.outcome is DisbursementOutcome.SUCCESS:
        parser.error("--reason only applies to a failed outcome")

    with get_session() as session:
        result = PayoutSettlementService(session).mark_payout_complete(
            args.payout_id, args.outcome, reference=args.reference, reason=args.reason,
        )

    logger.info(
        "Payout settled",
        payout_id=result.payout_id,
        status=result.status.value,
        earnings_settled=result.earnings_settled,
        bonuses_settled=result.bonuses_settled,
        bonus_period_reset=result.bonus_period_reset,
    )


if __name__ == "__main__":
    main()
