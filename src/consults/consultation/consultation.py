"""Consultation aggregate — the clinical review episode and its state machine.

State Machine:
    draft → scheduled → in_progress → completed
    draft/scheduled → cancelled
    scheduled → no_show
    in_progress → cancelled

Completed, cancelled and no_show are terminal. Every transition is appended to
``status_changes`` so the history can be audited. Consultations are archived,
never deleted.
"""

import json
from enum import Enum
from uuid import uuid4

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from consults.consultation.events import (
    ClinicianAssigned,
    ConsultationArchived,
    ConsultationCompleted,
    ConsultationOpened,
    ConsultationRestored,
    ConsultationStatusChanged,
)
from consults.domain import consults
from consults.errors import (
    ConsultationStateError,
    InvalidStateForCompletion,
    InvalidTransition,
    MissingRejectionReason,
)
from consults.utils.clock import as_utc, utc_now


class ConsultationStatus(Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class ConsultationMode(Enum):
    SYNC = "sync"
    ASYNC = "async"


class ConsultationOutcome(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


_VALID_TRANSITIONS = {
    ConsultationStatus.DRAFT: {ConsultationStatus.SCHEDULED, ConsultationStatus.CANCELLED},
    ConsultationStatus.SCHEDULED: {
        ConsultationStatus.IN_PROGRESS,
        ConsultationStatus.CANCELLED,
        ConsultationStatus.NO_SHOW,
    },
    ConsultationStatus.IN_PROGRESS: {ConsultationStatus.COMPLETED, ConsultationStatus.CANCELLED},
    ConsultationStatus.COMPLETED: set(),  # Terminal
    ConsultationStatus.CANCELLED: set(),  # Terminal
    ConsultationStatus.NO_SHOW: set(),  # Terminal
}

TERMINAL_STATUSES = {
    ConsultationStatus.COMPLETED,
    ConsultationStatus.CANCELLED,
    ConsultationStatus.NO_SHOW,
}

# Cancellation through the dedicated command; in-progress sessions are
# cancelled through a plain status transition instead.
_CANCELLABLE_STATES = {ConsultationStatus.DRAFT, ConsultationStatus.SCHEDULED}


def whole_minutes_between(started_at, ended_at) -> int:
    """Elapsed minutes rounded half up."""
    seconds = (as_utc(ended_at) - as_utc(started_at)).total_seconds()
    return max(int(seconds / 60 + 0.5), 0)


@consults.entity(part_of="Consultation")
class ConsultationStatusChange:
    from_status = String(required=True, max_length=20)
    to_status = String(required=True, max_length=20)
    actor = String(max_length=255)
    reason = Text()
    changed_at = DateTime(required=True)


@consults.aggregate
class Consultation:
    business_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    clinician_id = Identifier()
    mode = String(choices=ConsultationMode, default=ConsultationMode.ASYNC.value)
    status = String(choices=ConsultationStatus, default=ConsultationStatus.DRAFT.value)
    requested_product_id = Identifier()
    scheduled_at = DateTime()
    started_at = DateTime()
    ended_at = DateTime()
    duration_minutes = Integer()
    outcome = String(choices=ConsultationOutcome)
    rejection_reason = Text()
    approved_product_refs = Text()  # JSON array of product ids
    originating_submission_id = Identifier()
    # "submission:<id>" for intake-created consultations, unique per submission
    source_key = String(required=True, max_length=300, unique=True)
    order_id = Identifier()
    notes = Text()
    status_changes = HasMany(ConsultationStatusChange)
    created_at = DateTime()
    updated_at = DateTime()
    deleted_at = DateTime()

    @invariant.post
    def rejection_reason_present_only_for_rejections(self):
        rejected = self.outcome == ConsultationOutcome.REJECTED.value
        has_reason = bool(self.rejection_reason and self.rejection_reason.strip())
        if rejected != has_reason:
            raise ValidationError(
                {"rejection_reason": ["A rejection reason is required exactly when the outcome is rejected"]}
            )

    @invariant.post
    def outcome_only_once_completed(self):
        if self.outcome is not None and self.status != ConsultationStatus.COMPLETED.value:
            raise ValidationError({"outcome": ["An outcome can only be recorded on a completed consultation"]})

    @invariant.post
    def approved_products_only_for_approvals(self):
        if self.approved_product_refs and self.outcome != ConsultationOutcome.APPROVED.value:
            raise ValidationError(
                {"approved_product_refs": ["Approved products are only recorded for approved outcomes"]}
            )

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def open_from_submission(cls, business_id, patient_id, submission_id, product_id, notes=None):
        """Open the draft async consultation that reviews an intake submission."""
        now = utc_now()
        consultation = cls(
            business_id=business_id,
            patient_id=patient_id,
            mode=ConsultationMode.ASYNC.value,
            status=ConsultationStatus.DRAFT.value,
            requested_product_id=product_id,
            originating_submission_id=submission_id,
            source_key=f"submission:{submission_id}",
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        consultation._raise_opened()
        return consultation

    @classmethod
    def open_direct(cls, business_id, patient_id, mode=ConsultationMode.SYNC.value, product_id=None, order_id=None):
        """Open a consultation initiated by a clinician rather than by intake."""
        now = utc_now()
        consultation_id = str(uuid4())
        consultation = cls(
            id=consultation_id,
            business_id=business_id,
            patient_id=patient_id,
            mode=mode,
            status=ConsultationStatus.DRAFT.value,
            requested_product_id=product_id,
            order_id=order_id,
            source_key=f"direct:{consultation_id}",
            created_at=now,
            updated_at=now,
        )
        consultation._raise_opened()
        return consultation

    def _raise_opened(self):
        self.raise_(
            ConsultationOpened(
                consultation_id=str(self.id),
                business_id=str(self.business_id),
                patient_id=str(self.patient_id),
                mode=self.mode,
                originating_submission_id=(
                    str(self.originating_submission_id) if self.originating_submission_id else None
                ),
            )
        )

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def is_terminal(self) -> bool:
        return ConsultationStatus(self.status) in TERMINAL_STATUSES

    def _assert_can_transition(self, target_status):
        current = ConsultationStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(self.id, current.value, target_status.value)

    def _record_transition(self, target_status, actor, reason, now):
        """Apply a validated transition. Callers wrap this in ``atomic_change``."""
        previous = self.status
        self.status = target_status.value

        if target_status == ConsultationStatus.IN_PROGRESS and self.started_at is None:
            self.started_at = now
        if target_status in TERMINAL_STATUSES:
            self.ended_at = now
            if self.started_at is not None:
                self.duration_minutes = whole_minutes_between(self.started_at, now)

        self.add_status_changes(
            ConsultationStatusChange(
                from_status=previous,
                to_status=target_status.value,
                actor=actor,
                reason=reason,
                changed_at=now,
            )
        )
        self.updated_at = now
        return previous

    def _raise_status_changed(self, previous, actor, reason, now):
        self.raise_(
            ConsultationStatusChanged(
                consultation_id=str(self.id),
                business_id=str(self.business_id),
                from_status=previous,
                to_status=self.status,
                actor=actor,
                reason=reason,
                changed_at=now,
            )
        )

    def transition_to(self, to_status, actor=None, reason=None, now=None):
        """Move along any edge of the transition table.

        A bare transition into completed records a ``pending`` outcome;
        ``complete()`` is the path that records a clinical decision.
        """
        try:
            target = ConsultationStatus(to_status)
        except ValueError:
            raise InvalidTransition(self.id, self.status, to_status) from None

        self._assert_can_transition(target)
        now = now or utc_now()

        with atomic_change(self):
            previous = self._record_transition(target, actor, reason, now)
            if target == ConsultationStatus.COMPLETED and self.outcome is None:
                self.outcome = ConsultationOutcome.PENDING.value

        self._raise_status_changed(previous, actor, reason, now)

    def schedule(self, scheduled_at, actor=None):
        self._assert_can_transition(ConsultationStatus.SCHEDULED)
        now = utc_now()
        with atomic_change(self):
            previous = self._record_transition(ConsultationStatus.SCHEDULED, actor, None, now)
            self.scheduled_at = scheduled_at
        self._raise_status_changed(previous, actor, None, now)

    def start(self, actor=None):
        self.transition_to(ConsultationStatus.IN_PROGRESS.value, actor=actor)

    def cancel(self, reason, actor=None):
        current = ConsultationStatus(self.status)
        if current not in _CANCELLABLE_STATES:
            raise InvalidTransition(self.id, current.value, ConsultationStatus.CANCELLED.value)
        self.transition_to(ConsultationStatus.CANCELLED.value, actor=actor, reason=reason)

    def mark_no_show(self, actor=None):
        self.transition_to(ConsultationStatus.NO_SHOW.value, actor=actor)

    def complete(self, outcome, rejection_reason=None, approved_product_refs=None, actor=None, now=None):
        """Close an in-progress consultation with a clinical decision.

        Returns the list of approved product ids (empty unless approved).
        """
        if self.status != ConsultationStatus.IN_PROGRESS.value:
            raise InvalidStateForCompletion(self.id, self.status)

        if outcome not in (ConsultationOutcome.APPROVED.value, ConsultationOutcome.REJECTED.value):
            raise ValidationError({"outcome": [f"Outcome must be approved or rejected, got {outcome}"]})

        reason = (rejection_reason or "").strip() or None
        if outcome == ConsultationOutcome.REJECTED.value and reason is None:
            raise MissingRejectionReason(self.id)

        approved = []
        if outcome == ConsultationOutcome.APPROVED.value:
            approved = [str(p) for p in (approved_product_refs or []) if p]
            if not approved and self.requested_product_id:
                approved = [str(self.requested_product_id)]
            if not approved:
                raise ValidationError({"approved_product_refs": ["An approval must name at least one product"]})
            reason = None

        now = now or utc_now()
        with atomic_change(self):
            previous = self._record_transition(ConsultationStatus.COMPLETED, actor, reason, now)
            self.outcome = outcome
            self.rejection_reason = reason
            self.approved_product_refs = json.dumps(approved) if approved else None

        self._raise_status_changed(previous, actor, reason, now)
        self.raise_(
            ConsultationCompleted(
                consultation_id=str(self.id),
                business_id=str(self.business_id),
                patient_id=str(self.patient_id),
                outcome=outcome,
                rejection_reason=reason,
                approved_product_refs=self.approved_product_refs,
                duration_minutes=self.duration_minutes,
                completed_at=now,
            )
        )
        return approved

    def approved_products(self) -> list[str]:
        return json.loads(self.approved_product_refs) if self.approved_product_refs else []

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    def assign_clinician(self, clinician_id):
        """Assign or reassign the reviewing clinician (no-op when unchanged)."""
        if self.is_terminal():
            raise ConsultationStateError(
                self.id,
                f"Cannot assign a clinician to a {self.status} consultation",
            )
        if self.clinician_id and str(self.clinician_id) == str(clinician_id):
            return

        previous = self.clinician_id
        self.clinician_id = clinician_id
        self.updated_at = utc_now()
        self.raise_(
            ClinicianAssigned(
                consultation_id=str(self.id),
                clinician_id=str(clinician_id),
                previous_clinician_id=str(previous) if previous else None,
            )
        )

    # -------------------------------------------------------------------
    # Soft delete
    # -------------------------------------------------------------------
    def archive(self):
        if self.deleted_at is not None:
            return
        now = utc_now()
        self.deleted_at = now
        self.updated_at = now
        self.raise_(ConsultationArchived(consultation_id=str(self.id), archived_at=now))

    def restore(self):
        if self.deleted_at is None:
            raise ValidationError({"deleted_at": ["Consultation is not archived"]})
        self.deleted_at = None
        self.updated_at = utc_now()
        self.raise_(ConsultationRestored(consultation_id=str(self.id)))


@consults.repository(part_of=Consultation)
class ConsultationRepository:
    def for_submission(self, submission_id) -> Consultation | None:
        found = self._dao.query.filter(source_key=f"submission:{submission_id}").all().items
        return found[0] if found else None
