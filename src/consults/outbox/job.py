"""One outbox pass: reconcile approvals, then dispatch due events."""

from datetime import datetime

from protean.utils.globals import current_domain

from consults.outbox.dispatcher import DispatchOutboxEvents
from consults.outbox.reconciler import ReconcileApprovedConsultApprovals


def run_outbox_pass(as_of: datetime | None = None, limit: int | None = None) -> dict:
    created = current_domain.process(ReconcileApprovedConsultApprovals(), asynchronous=False)
    summary = current_domain.process(DispatchOutboxEvents(as_of=as_of, limit=limit), asynchronous=False)
    return {"reconciled": created or 0, **(summary or {})}
