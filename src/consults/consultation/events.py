"""Domain events for the Consultation aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from consults.domain import consults


@consults.event(part_of="Consultation")
class ConsultationOpened:
    """A draft consultation was opened, from intake or by a clinician."""

    __version__ = 1

    consultation_id = Identifier(required=True)
    business_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    mode = String(required=True)
    originating_submission_id = Identifier()


@consults.event(part_of="Consultation")
class ConsultationStatusChanged:
    __version__ = 1

    consultation_id = Identifier(required=True)
    business_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    actor = String(max_length=255)
    reason = Text()
    changed_at = DateTime(required=True)


@consults.event(part_of="Consultation")
class ClinicianAssigned:
    __version__ = 1

    consultation_id = Identifier(required=True)
    clinician_id = Identifier(required=True)
    previous_clinician_id = Identifier()


@consults.event(part_of="Consultation")
class ConsultationCompleted:
    """The clinician closed the consultation with an outcome."""

    __version__ = 1

    consultation_id = Identifier(required=True)
    business_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    outcome = String(required=True)
    rejection_reason = Text()
    approved_product_refs = Text()  # JSON array of product ids
    duration_minutes = Integer()
    completed_at = DateTime(required=True)


@consults.event(part_of="Consultation")
class ConsultationArchived:
    __version__ = 1

    consultation_id = Identifier(required=True)
    archived_at = DateTime(required=True)


@consults.event(part_of="Consultation")
class ConsultationRestored:
    __version__ = 1

    consultation_id = Identifier(required=True)
