from app.core.config import settings
from app.modules.alerts.config import load_engine_config
from app.modules.alerts.crud import AlertCrudService
from app.modules.alerts.engine import AlertEvaluator
from app.modules.alerts.metrics import MetricResolver
from app.modules.alerts.monitor import AlertMonitor
from app.modules.alerts.scheduler import AlertScheduler
from app.modules.alerts.tracker import AlertStateTracker
from app.modules.heart_rate.service import (
    HeartRateConnectionManager,
    HeartRateIngestor,
    HeartRateService,
)
from app.modules.medications.service import MedicationService
from app.modules.notifications.dispatcher import CooldownStore, NotificationDispatcher
from app.modules.notifications.push import FcmPushTransport
from app.modules.notifications.service import NotificationService
from app.modules.whoop.client import WhoopClient
from app.modules.whoop.gateway import WhoopGateway
from app.modules.whoop.rate_limiter import WhoopRateLimiter
from app.modules.whoop.service import WhoopTokenService

engine_config = load_engine_config()

whoop_limiter = WhoopRateLimiter(
    daily_limit=settings.WHOOP_DAILY_LIMIT,
    minute_limit=settings.WHOOP_MINUTE_LIMIT,
    heart_rate_ttl_seconds=settings.WHOOP_HEART_RATE_CACHE_TTL_SECONDS,
    metric_ttl_seconds=settings.WHOOP_METRIC_CACHE_TTL_SECONDS,
)
whoop_client = WhoopClient.from_settings(whoop_limiter)
whoop_gateway = WhoopGateway(whoop_client, whoop_limiter)
whoop_tokens = WhoopTokenService(whoop_client)

alert_store = AlertCrudService()
heart_rate_readings = HeartRateService()
heart_rate_manager = HeartRateConnectionManager()
notification_service = NotificationService()

metric_resolver = MetricResolver(
    gateway=whoop_gateway,
    tokens=whoop_tokens,
    readings=heart_rate_readings,
    medications=MedicationService(),
    heart_rate_max_age_seconds=engine_config.heart_rate_max_age_seconds,
    missed_dose_window_hours=engine_config.missed_dose_window_hours,
)
alert_evaluator = AlertEvaluator(metric_resolver, alert_store, engine_config.equality_epsilon)
alert_tracker = AlertStateTracker()

push_transport = FcmPushTransport.from_settings(
    on_invalid_token=notification_service.remove_device_token
)
notification_dispatcher = NotificationDispatcher(
    alerts=alert_store,
    notifications=notification_service,
    transport=push_transport,
    cooldown=CooldownStore(engine_config.cooldown_seconds),
    locale=engine_config.locale,
)

alert_monitor = AlertMonitor(alert_evaluator, alert_store, alert_tracker, notification_dispatcher)
alert_scheduler = AlertScheduler(alert_monitor, engine_config)
heart_rate_ingestor = HeartRateIngestor(
    heart_rate_readings, whoop_limiter, heart_rate_manager, alert_monitor
)


async def shutdown_alerting() -> None:
    await alert_scheduler.stop()
    await whoop_client.aclose()
    await push_transport.aclose()


# Route dependencies; tests override them or call handlers with fakes.
def get_alert_monitor() -> AlertMonitor:
    return alert_monitor


def get_alert_tracker() -> AlertStateTracker:
    return alert_tracker


def get_heart_rate_ingestor() -> HeartRateIngestor:
    return heart_rate_ingestor


def get_heart_rate_manager() -> HeartRateConnectionManager:
    return heart_rate_manager


def get_whoop_limiter() -> WhoopRateLimiter:
    return whoop_limiter


def get_whoop_tokens() -> WhoopTokenService:
    return whoop_tokens
