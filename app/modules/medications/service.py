from datetime import datetime, timezone
from typing import List

from app.modules.medications.models import CheckInStatus, MedicationCheckIn
from app.modules.medications.schemas import CheckInCreate
from app.shared.timeutils import ensure_utc


class MedicationService:
    """Medication check-ins: recording, listing and the reads behind alert metrics."""

    async def create_check_in(
        self, patient_id: str, payload: CheckInCreate, recorded_by: str | None = None
    ) -> MedicationCheckIn:
        check_in = MedicationCheckIn(
            patient_id=patient_id,
            medication_id=payload.medication_id.strip(),
            status=payload.status,
            taken_at=ensure_utc(payload.taken_at or datetime.now(timezone.utc)),
            scheduled_for=ensure_utc(payload.scheduled_for) if payload.scheduled_for else None,
            recorded_by=recorded_by,
            notes=payload.notes,
        )
        await check_in.insert()
        return check_in

    async def list_check_ins(self, patient_id: str, limit: int = 50) -> List[MedicationCheckIn]:
        return (
            await MedicationCheckIn.find(MedicationCheckIn.patient_id == patient_id)
            .sort("-taken_at")
            .limit(limit)
            .to_list()
        )

    async def list_recent_check_ins(
        self, patient_id: str, status: CheckInStatus, since: datetime
    ) -> List[MedicationCheckIn]:
        """Check-ins with `status` whose `taken_at` is at or after `since`, newest first."""
        return (
            await MedicationCheckIn.find(
                MedicationCheckIn.patient_id == patient_id,
                MedicationCheckIn.status == status,
                MedicationCheckIn.taken_at >= since,
            )
            .sort("-taken_at")
            .to_list()
        )
