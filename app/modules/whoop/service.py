from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from app.modules.whoop.client import WhoopClient
from app.modules.whoop.models import WhoopConnection
from app.shared.locks import KeyedLocks

log = structlog.get_logger()

REFRESH_MARGIN = timedelta(seconds=60)


class WhoopConnectionNotFound(Exception):
    """The patient has not linked a Whoop account."""

    def __init__(self, patient_id: str) -> None:
        super().__init__(f"No Whoop connection found for patient {patient_id}")
        self.patient_id = patient_id


@dataclass
class AccessToken:
    access_token: str
    expires_at: datetime


class WhoopTokenService:
    """Hands out valid access tokens, refreshing them through the vendor when close to expiry."""

    def __init__(self, client: WhoopClient) -> None:
        self._client = client
        self._refresh_locks = KeyedLocks()

    async def get_connection(self, patient_id: str) -> WhoopConnection | None:
        return await WhoopConnection.find_one(WhoopConnection.patient_id == patient_id)

    async def ensure_valid_access_token(self, patient_id: str) -> AccessToken:
        async with self._refresh_locks.hold(patient_id):
            connection = await self.get_connection(patient_id)
            if connection is None:
                raise WhoopConnectionNotFound(patient_id)

            expires_at = _as_utc(connection.expires_at)
            if expires_at - REFRESH_MARGIN > datetime.now(timezone.utc):
                return AccessToken(connection.access_token, expires_at)

            log.info("whoop token refresh", patient_id=patient_id)
            tokens = await self._client.refresh_tokens(connection.refresh_token)
            connection.access_token = tokens.access_token
            connection.refresh_token = tokens.refresh_token
            connection.expires_at = tokens.expires_at
            connection.token_type = tokens.token_type
            if tokens.refresh_token_expires_at is not None:
                connection.refresh_token_expires_at = tokens.refresh_token_expires_at
            if tokens.scope:
                connection.scope = tokens.scope
            await connection.save()
            return AccessToken(tokens.access_token, tokens.expires_at)


def _as_utc(value: datetime) -> datetime:
    # Mongo hands back naive datetimes that are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
