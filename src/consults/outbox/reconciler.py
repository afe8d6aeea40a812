"""ReconcileApprovedConsultApprovals — backfill outbox events for approvals.

Approval and enqueue are committed separately, so a crash between them would
lose the partner notification. This job runs ahead of every dispatch pass and
re-enqueues recently approved approvals; the dedupe key makes it a no-op for
approvals whose event already exists.
"""

import structlog
from protean.exceptions import InvalidOperationError, TransactionError, ValidationError
from protean.fields import Integer
from protean.utils.globals import current_domain
from protean.utils.mixins import handle
from sqlalchemy.exc import IntegrityError

from consults.approval.approval import ConsultApproval
from consults.config import get_config
from consults.domain import consults
from consults.outbox.enqueue import enqueue_approval_event
from consults.outbox.event import OutboxEvent

logger = structlog.get_logger(__name__)

RECONCILE_SOURCE = "reconcile_approved_consult_approvals"


@consults.command(part_of="OutboxEvent")
class ReconcileApprovedConsultApprovals:
    limit = Integer(min_value=1)  # Defaults to RECONCILE_BATCH_SIZE


@consults.command_handler(part_of=OutboxEvent)
class ReconcileApprovedConsultApprovalsHandler:
    @handle(ReconcileApprovedConsultApprovals)
    def reconcile(self, command):
        limit = command.limit or get_config().reconcile_batch_size
        approvals = current_domain.repository_for(ConsultApproval).recently_approved(limit)

        created = 0
        for approval in approvals:
            try:
                _, was_created = enqueue_approval_event(approval, source=RECONCILE_SOURCE)
            except (ValidationError, InvalidOperationError, IntegrityError, TransactionError) as exc:
                logger.error(
                    "Failed to reconcile approval event",
                    approval_id=str(approval.id),
                    error=str(exc),
                )
                continue
            if was_created:
                created += 1
                logger.info("Backfilled missing approval event", approval_id=str(approval.id))

        logger.info("Approved consult approvals reconciled", scanned=len(approvals), created=created)
        return created
