"""Worker: run the bi-monthly payout batch.

Scheduled by cron at ``0 9 15,30 * *``. Exits quietly on any other day
unless forced.

Usage:
    python -m worker.run_payouts
    python -m worker.run_payouts --force --date 2026-02-28
"""

import argparse
from datetime import UTC, date, datetime, time

import structlog

from db.connection import get_session
from payouts.services.schedule import is_payout_day, next_payout_date
from payouts.services.scheduler import PayoutScheduler

logger = structlog.get_logger(__name__)

RUN_TIME: time = time(9, 0)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the scheduled payout batch")
    parser.add_argument(
        "--date", "-d", type=date.fromisoformat,
        help="Treat this date as today (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--force", action="store_true", default=False,
        help="Run even if the date is not a payout day",
    )
    parser.add_argument(
        "--triggered-by", default="scheduler", help="Recorded on the processing run",
    )
    args = parser.parse_args(argv)

    now: datetime = (
        datetime.combine(args.date, RUN_TIME, tzinfo=UTC)
        if args.date
        else datetime.now(UTC)
    )
    if not args.force and not is_payout_day(now):
        logger.info(
            "Not a payout day, skipping",
            date=now.date().isoformat(),
            next_payout_date=next_payout_date(now).isoformat(),
        )
        return

    with get_session() as session:
        stats = PayoutScheduler(session).run_scheduled_batch(now, triggered_by=args.triggered_by)

    logger.info(
        "Payout run complete",
        run_id=stats.run_id,
        processed=stats.processed_count,
        total_amount=str(stats.total_amount),
    )
    for failure in stats.failures:
        logger.warning("payout_failure", creator_id=failure.creator_id, error=failure.error)
    for blocked in stats.blocked:
        logger.warning("payout_blocked", creator_id=blocked.creator_id, reason=blocked.reason.value)


if __name__ == "__main__":
    main()
