from pydantic import Field

from app.core.config import settings
from app.modules.alerts.models import AlertPriority
from app.shared.schemas import CamelModel


class AlertEngineConfig(CamelModel):
    """Timing and tolerance knobs for evaluation, scheduling and notification."""

    equality_epsilon: float = 0.0001
    high_interval_seconds: float = Field(default=30, gt=0)
    mid_interval_seconds: float = Field(default=5 * 60, gt=0)
    shutdown_grace_seconds: float = Field(default=10.0, ge=0)
    heart_rate_max_age_seconds: int = Field(default=5 * 60, gt=0)
    missed_dose_window_hours: int = Field(default=24, gt=0)
    cooldown_seconds: int = Field(default=5 * 60, ge=0)
    locale: str = "sv"

    def interval_for(self, priority: AlertPriority) -> float | None:
        """Fixed cadence for a tier; None for the midnight-anchored low tier."""
        if priority is AlertPriority.HIGH:
            return self.high_interval_seconds
        if priority is AlertPriority.MID:
            return self.mid_interval_seconds
        return None


def load_engine_config() -> AlertEngineConfig:
    return AlertEngineConfig(
        high_interval_seconds=settings.ALERT_HIGH_INTERVAL_SECONDS,
        mid_interval_seconds=settings.ALERT_MID_INTERVAL_SECONDS,
        shutdown_grace_seconds=settings.ALERT_SHUTDOWN_GRACE_SECONDS,
        heart_rate_max_age_seconds=settings.HEART_RATE_READING_MAX_AGE_SECONDS,
        missed_dose_window_hours=settings.MISSED_DOSE_WINDOW_HOURS,
        cooldown_seconds=settings.NOTIFICATION_COOLDOWN_SECONDS,
        locale=settings.NOTIFICATION_LOCALE,
    )
