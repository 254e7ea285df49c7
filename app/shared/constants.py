from enum import Enum


class Role(str, Enum):
    USER = "USER"
    CAREGIVER = "CAREGIVER"
    ADMIN = "ADMIN"


class UserStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    PENDING = "pending"


class PatientRole(str, Enum):
    """How an account is linked to a patient record."""

    PATIENT = "patient"
    CAREGIVER = "caregiver"
