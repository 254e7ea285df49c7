from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.modules.alerts.metrics import MetricResolver
from app.modules.alerts.models import MetricType
from app.modules.medications.models import CheckInStatus
from app.modules.whoop.client import WhoopAPIError
from app.modules.whoop.gateway import WhoopQuotaExceeded
from app.modules.whoop.rate_limiter import DataCategory, WhoopRateLimiter
from app.modules.whoop.service import AccessToken, WhoopConnectionNotFound


class FakeGateway:
    def __init__(self, limiter: WhoopRateLimiter, data: dict | None = None) -> None:
        self.limiter = limiter
        self.data = data or {}
        self.calls: list[DataCategory] = []
        self.error: Exception | None = None

    async def fetch(self, category: DataCategory, patient_id: str, access_token: str):
        self.calls.append(category)
        if self.error is not None:
            raise self.error
        return self.data.get(category, [])


class FakeTokens:
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.calls = 0

    async def ensure_valid_access_token(self, patient_id: str) -> AccessToken:
        self.calls += 1
        if not self.connected:
            raise WhoopConnectionNotFound(patient_id)
        return AccessToken("tok", datetime.now(timezone.utc) + timedelta(hours=1))


class FakeReadings:
    def __init__(self, reading=None) -> None:
        self.reading = reading

    async def get_latest(self, patient_id: str):
        return self.reading


class FakeMedications:
    def __init__(self, missed: int = 0) -> None:
        self.missed = missed
        self.queries: list[tuple] = []

    async def list_recent_check_ins(self, patient_id, status, since):
        self.queries.append((patient_id, status, since))
        return [SimpleNamespace(status=status)] * self.missed


def _alert(metric_type=MetricType.WHOOP, path="heart_rate") -> SimpleNamespace:
    return SimpleNamespace(id="a1", metric_type=metric_type, metric_path=path)


@pytest.fixture
def limiter(clock) -> WhoopRateLimiter:
    return WhoopRateLimiter(clock=clock)


def _resolver(limiter, gateway=None, tokens=None, readings=None, medications=None) -> MetricResolver:
    return MetricResolver(
        gateway=gateway or FakeGateway(limiter),
        tokens=tokens or FakeTokens(),
        readings=readings or FakeReadings(),
        medications=medications or FakeMedications(),
    )


@pytest.mark.asyncio
async def test_heart_rate_prefers_cache(limiter) -> None:
    limiter.cache_heart_rate("p1", 120.0)
    tokens = FakeTokens()
    resolver = _resolver(limiter, tokens=tokens)

    result = await resolver.resolve(_alert(path="HeartRate"), "p1")

    assert result.value == 120.0
    assert result.error is None
    assert tokens.calls == 0


@pytest.mark.asyncio
async def test_heart_rate_uses_recent_reading_and_primes_cache(limiter) -> None:
    reading = SimpleNamespace(
        heart_rate=77.0, timestamp=datetime.now(timezone.utc) - timedelta(minutes=2)
    )
    gateway = FakeGateway(limiter)
    resolver = _resolver(limiter, gateway=gateway, readings=FakeReadings(reading))

    result = await resolver.resolve(_alert(), "p1")

    assert result.value == 77.0
    assert gateway.calls == []
    assert limiter.get_cached_heart_rate("p1") == 77.0


@pytest.mark.asyncio
async def test_stale_reading_falls_through_to_workouts(limiter) -> None:
    reading = SimpleNamespace(
        heart_rate=60.0, timestamp=datetime.now(timezone.utc) - timedelta(minutes=10)
    )
    gateway = FakeGateway(
        limiter,
        {DataCategory.WORKOUTS: [{"score": {"strain": 4}}, {"score": {"average_heart_rate": 131}}]},
    )
    resolver = _resolver(limiter, gateway=gateway, readings=FakeReadings(reading))

    result = await resolver.resolve(_alert(), "p1")

    assert result.value == 131.0
    assert gateway.calls == [DataCategory.WORKOUTS]


@pytest.mark.asyncio
async def test_heart_rate_falls_back_to_cycle_recovery(limiter) -> None:
    gateway = FakeGateway(
        limiter,
        {
            DataCategory.WORKOUTS: [{"score": {"average_heart_rate": 0}}],
            DataCategory.CYCLES: [{"recovery": {"score": {"resting_heart_rate": 52}}}],
        },
    )
    resolver = _resolver(limiter, gateway=gateway)

    result = await resolver.resolve(_alert(), "p1")

    assert result.value == 52.0
    assert gateway.calls == [DataCategory.WORKOUTS, DataCategory.CYCLES]


@pytest.mark.asyncio
async def test_heart_rate_without_any_source_is_null(limiter) -> None:
    resolver = _resolver(limiter, tokens=FakeTokens(connected=False))

    result = await resolver.resolve(_alert(), "p1")

    assert result.value is None
    assert result.error == "No Whoop connection found for patient"


@pytest.mark.asyncio
async def test_heart_rate_respects_quota(clock) -> None:
    limiter = WhoopRateLimiter(daily_limit=0, clock=clock)
    gateway = FakeGateway(limiter)
    resolver = _resolver(limiter, gateway=gateway)

    result = await resolver.resolve(_alert(), "p1")

    assert result.value is None
    assert result.error.startswith("Daily rate limit exceeded")
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_recovery_path_reads_cycle_recovery_first(limiter) -> None:
    gateway = FakeGateway(
        limiter,
        {DataCategory.CYCLES: [{"recovery": {"score": {"recovery_score": 64}}}]},
    )
    resolver = _resolver(limiter, gateway=gateway)

    result = await resolver.resolve(_alert(path="recovery.score.recovery_score"), "p1")

    assert result.value == 64.0
    assert gateway.calls == [DataCategory.CYCLES]


@pytest.mark.asyncio
async def test_recovery_path_falls_back_to_recovery_records(limiter) -> None:
    gateway = FakeGateway(
        limiter,
        {
            DataCategory.CYCLES: [{"score": {"strain": 1}}],
            DataCategory.RECOVERY: [{"score": {"recovery_score": 33}}],
        },
    )
    resolver = _resolver(limiter, gateway=gateway)

    result = await resolver.resolve(_alert(path="recovery.score.recovery_score"), "p1")

    assert result.value == 33.0
    assert gateway.calls == [DataCategory.CYCLES, DataCategory.RECOVERY]


@pytest.mark.asyncio
async def test_sleep_path_reads_sleep_records(limiter) -> None:
    gateway = FakeGateway(
        limiter,
        {DataCategory.SLEEP: [{"score": {"sleep_efficiency_percentage": 88.5}}]},
    )
    resolver = _resolver(limiter, gateway=gateway)

    result = await resolver.resolve(_alert(path="sleep.score.sleep_efficiency_percentage"), "p1")

    assert result.value == 88.5
    assert gateway.calls == [DataCategory.SLEEP]


@pytest.mark.asyncio
async def test_other_paths_read_cycles_then_recovery(limiter) -> None:
    gateway = FakeGateway(
        limiter,
        {DataCategory.CYCLES: [{"score": {"strain": 14.2}}]},
    )
    resolver = _resolver(limiter, gateway=gateway)

    assert (await resolver.resolve(_alert(path="score.strain"), "p1")).value == 14.2
    missing = await resolver.resolve(_alert(path="score.nothing"), "p1")
    assert missing.value is None
    assert missing.error is None


@pytest.mark.asyncio
async def test_vendor_path_needs_connection(limiter) -> None:
    gateway = FakeGateway(limiter)
    resolver = _resolver(limiter, gateway=gateway, tokens=FakeTokens(connected=False))

    result = await resolver.resolve(_alert(path="score.strain"), "p1")

    assert result.value is None
    assert result.error == "No Whoop connection found for patient"
    assert gateway.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (WhoopQuotaExceeded("Per-minute rate limit exceeded (100 requests/minute)"), "Per-minute"),
        (WhoopAPIError("Failed to fetch Whoop data (cycle): 500 - boom", status_code=500), "500"),
        (RuntimeError("unexpected"), "unexpected"),
    ],
)
async def test_vendor_failures_become_diagnostics(limiter, error, expected) -> None:
    gateway = FakeGateway(limiter)
    gateway.error = error
    resolver = _resolver(limiter, gateway=gateway)

    result = await resolver.resolve(_alert(path="score.strain"), "p1")

    assert result.value is None
    assert expected in result.error


@pytest.mark.asyncio
async def test_missed_dose_counts_last_day(limiter) -> None:
    medications = FakeMedications(missed=3)
    resolver = _resolver(limiter, medications=medications)

    result = await resolver.resolve(_alert(MetricType.MEDICATION, "missed_dose"), "p1")

    assert result.value == 3.0
    patient_id, status, since = medications.queries[0]
    assert patient_id == "p1"
    assert status == CheckInStatus.MISSED
    assert timedelta(hours=23, minutes=59) < datetime.now(timezone.utc) - since <= timedelta(hours=24, seconds=5)


@pytest.mark.asyncio
async def test_unknown_medication_metric(limiter) -> None:
    resolver = _resolver(limiter)

    result = await resolver.resolve(_alert(MetricType.MEDICATION, "doses_taken"), "p1")

    assert result.value is None
    assert result.error == "Unknown medication metric: doses_taken"
