from datetime import datetime

from app.shared.schemas import CamelModel


class QuotaWindowRead(CamelModel):
    used: int
    limit: int
    reset_in_ms: int


class ReportedQuotaRead(CamelModel):
    limit: int
    remaining: int
    reset: int


class RateLimitStatusRead(CamelModel):
    per_minute: QuotaWindowRead
    per_day: QuotaWindowRead
    api_reported: ReportedQuotaRead | None = None


class ConnectionStatusRead(CamelModel):
    patient_id: str
    connected: bool
    whoop_user_id: str | None = None
    scope: str | None = None
    expires_at: datetime | None = None
    last_synced_at: datetime | None = None
