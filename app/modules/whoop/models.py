from datetime import datetime, timezone

from beanie import Document, Insert, Replace, Save, Update, before_event
from pydantic import Field
from pymongo import IndexModel


class WhoopConnection(Document):
    """OAuth token set linking a patient to their Whoop account."""

    patient_id: str
    user_id: str
    whoop_user_id: str | None = None
    access_token: str
    refresh_token: str
    expires_at: datetime
    refresh_token_expires_at: datetime | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    last_synced_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "whoop_connections"
        indexes = [
            IndexModel([("patient_id", 1)], unique=True),
            IndexModel([("user_id", 1)]),
        ]

    @before_event(Insert, Replace, Save, Update)
    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
