from datetime import datetime, timezone
from typing import List, Optional

from beanie import Document, Indexed, Insert, Replace, Save, Update, before_event
from pydantic import EmailStr, Field

from app.shared.constants import Role, UserStatus


class User(Document):
    """Caregiver or patient account. Credentials are owned by the identity service."""

    email: Indexed(EmailStr, unique=True)  # type: ignore
    name: Optional[str] = None
    status: UserStatus = UserStatus.ACTIVE
    roles: List[Role] = [Role.USER]

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @before_event(Insert, Replace, Save, Update)
    def update_updated_at(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    class Settings:
        name = "users"
