from dataclasses import dataclass
from typing import List

from app.modules.patients.models import PatientUser
from app.modules.users.models import User
from app.shared.constants import PatientRole, Role


class NoPatientContext(Exception):
    """The account is not linked to any patient record."""


@dataclass
class PatientContext:
    patient_id: str
    role: PatientRole


class PatientService:
    """Read side of the patient <-> account links used by alerts and notifications."""

    async def list_user_ids(self, patient_id: str) -> List[str]:
        links = await PatientUser.find(PatientUser.patient_id == patient_id).to_list()
        # Preserve link order while dropping duplicates.
        return list(dict.fromkeys(link.user_id for link in links))

    async def get_context(self, user_id: str) -> PatientContext:
        link = await PatientUser.find_one(PatientUser.user_id == user_id)
        if not link:
            raise NoPatientContext(user_id)
        return PatientContext(patient_id=link.patient_id, role=link.role)

    async def has_access(self, user: User, patient_id: str) -> bool:
        if Role.ADMIN in user.roles:
            return True
        link = await PatientUser.find_one(
            PatientUser.patient_id == patient_id,
            PatientUser.user_id == str(user.id),
        )
        return link is not None
