"""
Rotating QR tokens.

A token is ``<uuid4>_<unix-millis>``: the random part makes it unguessable, the
embedded creation time lets a validator judge staleness without another read.
Tokens are written onto the event by the current lease holder only.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, system_clock
from attendly.config import settings
from attendly.models.event import STATIC_TOKEN, Event
from attendly.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RotatedToken:
    token: str
    issued_at: datetime
    expires_at: datetime


def clamp_rotation_interval(seconds: int | None) -> int:
    if seconds is None:
        return settings.ROTATION_DEFAULT_SECONDS
    return min(settings.ROTATION_MAX_SECONDS, max(settings.ROTATION_MIN_SECONDS, int(seconds)))


def generate_token(now: datetime) -> str:
    return f"{uuid.uuid4()}_{int(now.timestamp() * 1000)}"


def token_issued_at_ms(token: str) -> int | None:
    """Creation time embedded in a rotating token, or None for foreign values."""
    if not token or token == STATIC_TOKEN:
        return None
    _, _, suffix = token.rpartition("_")
    try:
        return int(suffix)
    except ValueError:
        return None


def is_token_stale(token: str, now: datetime) -> bool:
    issued_ms = token_issued_at_ms(token)
    if issued_ms is None:
        return True
    age_ms = now.timestamp() * 1000 - issued_ms
    return age_ms > settings.TOKEN_VALIDITY_SECONDS * 1000


class TokenRotationService:
    def __init__(self, db: AsyncSession, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    async def rotate(self, event_id: str, host_id: str) -> RotatedToken | None:
        """
        Mint a fresh token and publish it on the event.

        The write only lands while ``host_id`` holds an unexpired lease on an
        active rotating event. Returns None when the guard fails: the caller
        has lost the lease and should stop rotating until it observes the
        event again.
        """
        now = self.clock.now()
        event = await self.db.get(Event, event_id, populate_existing=True)
        if event is None:
            return None

        interval = clamp_rotation_interval(event.rotation_interval_seconds)
        token = generate_token(now)
        expires_at = now + timedelta(seconds=interval + settings.ROTATION_GRACE_SECONDS)

        result = await self.db.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.is_active.is_(True),
                Event.rotation_enabled.is_(True),
                Event.host_id == host_id,
                Event.host_lease_expires_at >= now,
            )
            .values(current_token=token, token_expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount != 1:
            logger.info("Rotation for event %s skipped: %s is not the host", event_id, host_id)
            return None

        return RotatedToken(token=token, issued_at=now, expires_at=expires_at)
