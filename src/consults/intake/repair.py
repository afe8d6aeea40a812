"""Intake repair — heal submissions whose record set was only partly written.

A crash between the writes of an intake leaves a pending submission without
its consultation, approval or links. Triggered periodically alongside the
outbox job; every step is create-once, so re-running is harmless.
"""

import structlog
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Integer
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from consults.approval.approval import approval_key
from consults.domain import consults
from consults.intake.deduplication import ensure_intake_records
from consults.intake.submission import ConsultSubmission
from consults.utils.once import serialized

logger = structlog.get_logger(__name__)


@consults.command(part_of="ConsultSubmission")
class RepairPendingSubmissions:
    limit = Integer(default=50, min_value=1)


@consults.command_handler(part_of=ConsultSubmission)
class RepairPendingSubmissionsHandler:
    @handle(RepairPendingSubmissions)
    def repair_pending_submissions(self, command):
        pending = current_domain.repository_for(ConsultSubmission).pending(limit=command.limit or 50)
        if not pending:
            return 0

        repaired = 0
        for submission in pending:
            key = approval_key(submission.business_id, submission.customer_id, submission.product_id)
            try:
                with serialized(f"intake:{key}"):
                    ensure_intake_records(submission)
                repaired += 1
            except (ValidationError, InvalidOperationError) as exc:
                logger.error(
                    "Failed to repair consult submission",
                    submission_id=str(submission.id),
                    error=str(exc),
                )

        logger.info("Pending consult submissions checked", checked=len(pending), repaired=repaired)
        return repaired
