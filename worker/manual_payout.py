"""Worker: pay one creator now, ignoring the minimum payout threshold.

Usage:
    python -m worker.manual_payout --creator creator-42 --actor admin-7 --notes "Account closure"
"""

import argparse
import sys

import structlog

from db.connection import get_session
from payouts.services.errors import NoClaimableEarningsError, PayoutBlockedError
from payouts.services.scheduler import PayoutScheduler

logger = structlog.get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Process a manual payout for one creator")
    parser.add_argument("--creator", "-c", required=True, help="Creator id")
    parser.add_argument("--actor", "-a", required=True, help="Admin user triggering the payout")
    parser.add_argument("--notes", "-n", help="Admin notes stored on the payout")
    args = parser.parse_args(argv)

    try:
        with get_session() as session:
            stats = PayoutScheduler(session).run_manual_payout(
                args.creator, args.actor, notes=args.notes,
            )
    except NoClaimableEarningsError as e:
        logger.warning("Nothing to pay", creator_id=args.creator, detail=str(e))
        sys.exit(1)
    except PayoutBlockedError as e:
        logger.warning("Payout blocked", creator_id=e.creator_id, reason=e.reason.value)
        sys.exit(1)

    logger.info(
        "Manual payout complete",
        run_id=stats.run_id,
        creator_id=args.creator,
        payout_ids=stats.payout_ids,
        total_amount=str(stats.total_amount),
    )
    if stats.failures:
        logger.warning("Manual payout not handed off", error=stats.failures[0].error)
        sys.exit(1)


if __name__ == "__main__":
    main()
