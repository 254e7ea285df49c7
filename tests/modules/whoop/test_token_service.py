import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.modules.whoop.client import WhoopTokenSet
from app.modules.whoop.service import WhoopConnectionNotFound, WhoopTokenService


class FakeClient:
    def __init__(self) -> None:
        self.refreshed_with: list[str] = []

    async def refresh_tokens(self, refresh_token: str) -> WhoopTokenSet:
        self.refreshed_with.append(refresh_token)
        return WhoopTokenSet(
            access_token="fresh",
            refresh_token="fresh-refresh",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
            token_type="Bearer",
            scope="read:recovery",
        )


class _Connection(SimpleNamespace):
    saved = 0

    async def save(self) -> None:
        self.saved += 1


def _service(connection) -> tuple[WhoopTokenService, FakeClient]:
    client = FakeClient()
    service = WhoopTokenService(client)

    async def _get_connection(patient_id: str):
        return connection

    service.get_connection = _get_connection  # type: ignore[method-assign]
    return service, client


@pytest.mark.asyncio
async def test_valid_token_is_returned_without_refresh() -> None:
    connection = _Connection(
        access_token="current",
        refresh_token="r",
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=30),
    )
    service, client = _service(connection)

    token = await service.ensure_valid_access_token("p1")

    assert token.access_token == "current"
    assert client.refreshed_with == []


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed_and_persisted() -> None:
    connection = _Connection(
        access_token="stale",
        refresh_token="r-old",
        # Naive datetimes come back from Mongo and are UTC.
        expires_at=datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(seconds=30),
        token_type="Bearer",
        scope=None,
        refresh_token_expires_at=None,
    )
    service, client = _service(connection)

    token = await service.ensure_valid_access_token("p1")

    assert token.access_token == "fresh"
    assert client.refreshed_with == ["r-old"]
    assert connection.access_token == "fresh"
    assert connection.refresh_token == "fresh-refresh"
    assert connection.scope == "read:recovery"
    assert connection.saved == 1


@pytest.mark.asyncio
async def test_missing_connection_raises() -> None:
    service, _ = _service(None)

    with pytest.raises(WhoopConnectionNotFound):
        await service.ensure_valid_access_token("p1")

    assert len(service._refresh_locks) == 0


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh_and_release_the_lock() -> None:
    connection = _Connection(
        access_token="stale",
        refresh_token="r-old",
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        token_type="Bearer",
        scope=None,
        refresh_token_expires_at=None,
    )
    service, client = _service(connection)

    tokens = await asyncio.gather(*(service.ensure_valid_access_token("p1") for _ in range(3)))

    assert [token.access_token for token in tokens] == ["fresh"] * 3
    assert client.refreshed_with == ["r-old"]
    assert len(service._refresh_locks) == 0
