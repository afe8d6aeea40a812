"""Consultation lifecycle — commands and handler for every non-completing transition."""

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from consults.audit import RiskLevel, record_audit_event
from consults.clinician.clinician import Clinician
from consults.consultation.consultation import Consultation, ConsultationMode
from consults.domain import consults
from consults.errors import ClinicianNotFound


@consults.command(part_of="Consultation")
class OpenConsultation:
    """Clinician-initiated consultation, outside of customer intake."""

    business_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    mode = String(choices=ConsultationMode, default=ConsultationMode.SYNC.value)
    product_id = Identifier()
    order_id = Identifier()
    actor = String(max_length=255)


@consults.command(part_of="Consultation")
class ScheduleConsultation:
    consultation_id = Identifier(required=True)
    scheduled_at = DateTime(required=True)
    actor = String(max_length=255)


@consults.command(part_of="Consultation")
class StartConsultation:
    consultation_id = Identifier(required=True)
    actor = String(max_length=255)


@consults.command(part_of="Consultation")
class CancelConsultation:
    consultation_id = Identifier(required=True)
    reason = Text(required=True)
    actor = String(max_length=255)


@consults.command(part_of="Consultation")
class MarkNoShow:
    consultation_id = Identifier(required=True)
    actor = String(max_length=255)


@consults.command(part_of="Consultation")
class TransitionConsultationStatus:
    consultation_id = Identifier(required=True)
    to_status = String(required=True, max_length=20)
    actor = String(max_length=255)
    reason = Text()


@consults.command(part_of="Consultation")
class AssignClinician:
    consultation_id = Identifier(required=True)
    clinician_id = Identifier(required=True)
    actor = String(max_length=255)


@consults.command(part_of="Consultation")
class ArchiveConsultation:
    consultation_id = Identifier(required=True)
    actor = String(max_length=255)


@consults.command(part_of="Consultation")
class RestoreConsultation:
    consultation_id = Identifier(required=True)
    actor = String(max_length=255)


def _audit_status_change(consultation, previous_status, actor, reason=None):
    record_audit_event(
        action="consultation.status_change",
        entity_type="consultation",
        entity_id=consultation.id,
        business_id=consultation.business_id,
        actor=actor,
        risk_level=RiskLevel.MEDIUM.value,
        changes={"from": previous_status, "to": consultation.status, "reason": reason},
    )


@consults.command_handler(part_of=Consultation)
class ConsultationLifecycleHandler:
    @handle(OpenConsultation)
    def open_consultation(self, command):
        consultation = Consultation.open_direct(
            business_id=command.business_id,
            patient_id=command.patient_id,
            mode=command.mode,
            product_id=command.product_id,
            order_id=command.order_id,
        )
        current_domain.repository_for(Consultation).add(consultation)
        record_audit_event(
            action="consultation.create",
            entity_type="consultation",
            entity_id=consultation.id,
            business_id=consultation.business_id,
            actor=command.actor,
            risk_level=RiskLevel.MEDIUM.value,
        )
        return str(consultation.id)

    @handle(ScheduleConsultation)
    def schedule_consultation(self, command):
        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        previous = consultation.status
        consultation.schedule(command.scheduled_at, actor=command.actor)
        repo.add(consultation)
        _audit_status_change(consultation, previous, command.actor)

    @handle(StartConsultation)
    def start_consultation(self, command):
        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        previous = consultation.status
        consultation.start(actor=command.actor)
        repo.add(consultation)
        _audit_status_change(consultation, previous, command.actor)

    @handle(CancelConsultation)
    def cancel_consultation(self, command):
        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        previous = consultation.status
        consultation.cancel(command.reason, actor=command.actor)
        repo.add(consultation)
        _audit_status_change(consultation, previous, command.actor, command.reason)

    @handle(MarkNoShow)
    def mark_no_show(self, command):
        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        previous = consultation.status
        consultation.mark_no_show(actor=command.actor)
        repo.add(consultation)
        _audit_status_change(consultation, previous, command.actor)

    @handle(TransitionConsultationStatus)
    def transition_status(self, command):
        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        previous = consultation.status
        consultation.transition_to(command.to_status, actor=command.actor, reason=command.reason)
        repo.add(consultation)
        _audit_status_change(consultation, previous, command.actor, command.reason)

    @handle(AssignClinician)
    def assign_clinician(self, command):
        try:
            clinician = current_domain.repository_for(Clinician).get(command.clinician_id)
        except ObjectNotFoundError:
            raise ClinicianNotFound(command.clinician_id) from None
        if not clinician.is_assignable():
            raise ClinicianNotFound(command.clinician_id)

        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        consultation.assign_clinician(str(clinician.id))
        repo.add(consultation)
        record_audit_event(
            action="consultation.assign_clinician",
            entity_type="consultation",
            entity_id=consultation.id,
            business_id=consultation.business_id,
            actor=command.actor,
            risk_level=RiskLevel.MEDIUM.value,
            changes={"clinician_id": str(clinician.id)},
        )

    @handle(ArchiveConsultation)
    def archive_consultation(self, command):
        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        consultation.archive()
        repo.add(consultation)
        record_audit_event(
            action="consultation.archive",
            entity_type="consultation",
            entity_id=consultation.id,
            business_id=consultation.business_id,
            actor=command.actor,
            risk_level=RiskLevel.HIGH.value,
        )

    @handle(RestoreConsultation)
    def restore_consultation(self, command):
        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        consultation.restore()
        repo.add(consultation)
        record_audit_event(
            action="consultation.restore",
            entity_type="consultation",
            entity_id=consultation.id,
            business_id=consultation.business_id,
            actor=command.actor,
            risk_level=RiskLevel.MEDIUM.value,
        )
