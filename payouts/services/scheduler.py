"""Payout scheduler: runs one batch and hands each payout to the disbursement gateway.

Safe to invoke off-schedule or concurrently: claims are guarded per row, so a
second run only sees what the first one left unclaimed.

The scheduler owns its transaction boundaries. The run record, each creator's
payout and each hand-off are committed separately; a payout reaches the gateway
only once it is committed.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.orm import Session

from db.enums import PayoutStatus, RunStatus, RunType
from db.models import PaymentAccounts, Payouts, ProcessingRuns
from payouts.services._helpers import dump_json, new_id, to_money, utc_now
from payouts.services._types import RunSummaryDict
from payouts.services.batch import PayoutBatchBuilder
from payouts.services.disbursement import DisbursementGateway, LoggingDisbursementGateway
from payouts.services.errors import InvalidPayoutTransitionError
from payouts.services.schedule import is_payout_day, next_payout_date
from payouts.services.schemas.results import (
    BatchBuildResult,
    BlockedCreator,
    PayoutRunStats,
    RunFailure,
)

logger = structlog.get_logger(__name__)


class PayoutScheduler:
    """Entry point for the time trigger and for manual admin payouts."""

    def __init__(
        self,
        session: Session,
        builder: PayoutBatchBuilder | None = None,
        gateway: DisbursementGateway | None = None,
    ) -> None:
        self.session: Session = session
        self.builder: PayoutBatchBuilder = builder or PayoutBatchBuilder(session)
        self.gateway: DisbursementGateway = gateway or LoggingDisbursementGateway()

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def _create_run(self, run_type: RunType, triggered_by: str, now: datetime) -> ProcessingRuns:
        run: ProcessingRuns = ProcessingRuns(
            run_id=new_id(),
            run_type=run_type,
            status=RunStatus.RUNNING,
            started_at=now,
            triggered_by=triggered_by,
        )
        self.session.add(run)
        self.session.commit()
        return run

    def _fail_run(self, run: ProcessingRuns, error: Exception) -> None:
        self.session.rollback()
        run.status = RunStatus.FAILED
        run.error_details = dump_json({"error": str(error), "type": type(error).__name__})
        run.completed_at = utc_now()
        self.session.commit()

    def _finish_run(self, run: ProcessingRuns, stats: PayoutRunStats, created: int) -> None:
        summary: RunSummaryDict = {
            "processed_count": stats.processed_count,
            "total_amount": str(stats.total_amount),
            "failures": [{"creator_id": f.creator_id, "error": f.error} for f in stats.failures],
            "blocked": [{"creator_id": b.creator_id, "reason": b.reason.value} for b in stats.blocked],
        }
        run.status = RunStatus.PARTIAL if stats.failures else RunStatus.SUCCESS
        run.records_created = created
        run.records_processed = stats.processed_count
        run.records_skipped = len(stats.blocked)
        run.summary = dump_json(summary)
        run.completed_at = utc_now()
        self.session.commit()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_scheduled_batch(
        self, now: datetime | None = None, triggered_by: str = "scheduler"
    ) -> PayoutRunStats:
        now = now or utc_now()
        run: ProcessingRuns = self._create_run(RunType.SCHEDULED_PAYOUT, triggered_by, now)
        logger.info(
            "Starting scheduled payout batch",
            run_id=run.run_id,
            as_of=now.isoformat(),
            payout_day=is_payout_day(now),
        )

        try:
            build: BatchBuildResult = self.builder.build_batch(now)
        except Exception as e:
            logger.exception("Scheduled payout batch failed", run_id=run.run_id)
            self._fail_run(run, e)
            raise

        stats: PayoutRunStats = self._hand_off_all(
            run.run_id, build.payouts, build.failures, build.blocked, now
        )
        self._finish_run(run, stats, created=len(build.payouts))

        logger.info(
            "Scheduled payout batch complete",
            run_id=run.run_id,
            processed=stats.processed_count,
            total_amount=str(stats.total_amount),
            failures=len(stats.failures),
            blocked=len(stats.blocked),
            next_payout_date=next_payout_date(now).isoformat(),
        )
        return stats

    def run_manual_payout(
        self,
        creator_id: str,
        actor_id: str,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> PayoutRunStats:
        now = now or utc_now()
        run: ProcessingRuns = self._create_run(RunType.MANUAL_PAYOUT, actor_id, now)
        logger.info("Starting manual payout", run_id=run.run_id, creator_id=creator_id, actor=actor_id)

        try:
            payout: Payouts = self.builder.build_for_creator(
                creator_id,
                now,
                processed_by=actor_id,
                admin_notes=notes or "Manual payout processed by admin",
            )
        except Exception as e:
            logger.warning("manual_payout_rejected", creator_id=creator_id, error=str(e))
            self._fail_run(run, e)
            raise

        stats: PayoutRunStats = self._hand_off_all(run.run_id, [payout], [], [], now)
        self._finish_run(run, stats, created=1)
        return stats

    # ------------------------------------------------------------------
    # Disbursement hand-off
    # ------------------------------------------------------------------

    def _hand_off_all(
        self,
        run_id: str,
        payouts: Sequence[Payouts],
        failures: Sequence[RunFailure],
        blocked: Sequence[BlockedCreator],
        now: datetime,
    ) -> PayoutRunStats:
        all_failures: list[RunFailure] = list(failures)
        processed: list[str] = []
        total: Decimal = Decimal(0)

        for payout in payouts:
            try:
                self._hand_off(payout, now)
            except Exception as e:
                self.session.rollback()
                logger.exception(
                    "disbursement_handoff_failed",
                    payout_id=payout.id,
                    creator_id=payout.creator_id,
                )
                all_failures.append(RunFailure(creator_id=payout.creator_id, error=str(e)))
            else:
                processed.append(payout.id)
                total += payout.total_amount

        return PayoutRunStats(
            run_id=run_id,
            processed_count=len(processed),
            total_amount=to_money(total),
            failures=all_failures,
            blocked=list(blocked),
            payout_ids=processed,
        )

    def _hand_off(self, payout: Payouts, now: datetime) -> None:
        if not payout.status.can_advance_to(PayoutStatus.PROCESSING):
            raise InvalidPayoutTransitionError(
                f"Payout {payout.id} cannot be submitted from {payout.status.value}"
            )
        account: PaymentAccounts = self.builder.require_destination(payout.creator_id)
        reference: str = self.gateway.submit(payout, account)
        payout.status = PayoutStatus.PROCESSING
        payout.external_reference = reference
        payout.submitted_at = now
        self.session.commit()
