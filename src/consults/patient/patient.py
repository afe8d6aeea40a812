"""Patient aggregate — the clinical identity of a customer within one business."""

from protean.fields import DateTime, Identifier, String

from consults.domain import consults
from consults.utils.clock import utc_now


def patient_key(business_id, customer_id) -> str:
    return f"{business_id}:{customer_id}"


@consults.aggregate
class Patient:
    business_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    patient_key = String(required=True, max_length=300, unique=True)
    email = String(max_length=254)
    first_name = String(max_length=100)
    last_name = String(max_length=100)
    phone = String(max_length=30)
    created_at = DateTime()

    @classmethod
    def register(cls, business_id, customer_id, email=None, first_name=None, last_name=None, phone=None):
        return cls(
            business_id=business_id,
            customer_id=customer_id,
            patient_key=patient_key(business_id, customer_id),
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            created_at=utc_now(),
        )


@consults.repository(part_of=Patient)
class PatientRepository:
    def for_customer(self, business_id, customer_id) -> Patient | None:
        patients = self._dao.query.filter(patient_key=patient_key(business_id, customer_id)).all().items
        return patients[0] if patients else None
