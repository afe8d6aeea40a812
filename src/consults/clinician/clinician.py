"""Clinician aggregate and registration command."""

from enum import Enum

from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from consults.domain import consults
from consults.utils.clock import utc_now


class ClinicianStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


@consults.aggregate
class Clinician:
    business_id = Identifier(required=True)
    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    email = String(required=True, max_length=254)
    license_number = String(max_length=100)
    status = String(choices=ClinicianStatus, default=ClinicianStatus.ACTIVE.value)
    created_at = DateTime()

    @classmethod
    def register(cls, business_id, first_name, last_name, email, license_number=None):
        return cls(
            business_id=business_id,
            first_name=first_name,
            last_name=last_name,
            email=email.strip().lower(),
            license_number=license_number,
            status=ClinicianStatus.ACTIVE.value,
            created_at=utc_now(),
        )

    def is_assignable(self) -> bool:
        return self.status == ClinicianStatus.ACTIVE.value

    def suspend(self):
        self.status = ClinicianStatus.SUSPENDED.value


@consults.command(part_of="Clinician")
class RegisterClinician:
    business_id = Identifier(required=True)
    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    email = String(required=True, max_length=254)
    license_number = String(max_length=100)


@consults.command_handler(part_of=Clinician)
class RegisterClinicianHandler:
    @handle(RegisterClinician)
    def register_clinician(self, command):
        clinician = Clinician.register(
            business_id=command.business_id,
            first_name=command.first_name,
            last_name=command.last_name,
            email=command.email,
            license_number=command.license_number,
        )
        current_domain.repository_for(Clinician).add(clinician)
        return str(clinician.id)
