"""
Host lease election for rotating QR codes.

Any number of organizer tabs may show an event, but only the tab holding the
lease mints tokens. Every transition is one conditional UPDATE on the event
row, so the store's atomicity is the only arbiter: under contention exactly one
claim lands per empty or expired lease. Losing the lease is an ordinary
outcome reported as ``False``, never an exception.
"""
from datetime import datetime, timedelta

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, system_clock
from attendly.config import settings
from attendly.models.event import Event
from attendly.utils.logging import get_logger

logger = get_logger(__name__)


class HostLeaseService:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = system_clock,
        lease_seconds: float | None = None,
    ):
        self.db = db
        self.clock = clock
        self.lease_seconds = lease_seconds or settings.HOST_LEASE_SECONDS

    def _lease_deadline(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.lease_seconds)

    async def claim(self, event_id: str, host_id: str) -> bool:
        """
        Take the lease if it is empty, expired, or already ours.

        Only active events with rotation enabled can be hosted.
        """
        now = self.clock.now()
        result = await self.db.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.is_active.is_(True),
                Event.rotation_enabled.is_(True),
                or_(
                    Event.host_id.is_(None),
                    Event.host_lease_expires_at.is_(None),
                    Event.host_lease_expires_at < now,
                    Event.host_id == host_id,
                ),
            )
            .values(host_id=host_id, host_lease_expires_at=self._lease_deadline(now))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        claimed = result.rowcount == 1
        if claimed:
            logger.info("Event %s: %s holds the QR host lease", event_id, host_id)
        return claimed

    async def renew(self, event_id: str, host_id: str) -> bool:
        """Extend our lease. Fails once anyone else has taken it over."""
        now = self.clock.now()
        result = await self.db.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.is_active.is_(True),
                Event.rotation_enabled.is_(True),
                Event.host_id == host_id,
            )
            .values(host_lease_expires_at=self._lease_deadline(now))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        renewed = result.rowcount == 1
        if not renewed:
            logger.info("Event %s: %s lost the QR host lease", event_id, host_id)
        return renewed

    async def release(self, event_id: str, host_id: str, stop_event: bool = True) -> bool:
        """
        Give the lease up, by default stopping the event as well.

        Sent when a host tab leaves; advisory only, since an unrenewed lease
        lapses on its own.
        """
        values: dict = {"host_id": None, "host_lease_expires_at": None}
        if stop_event:
            values.update(is_active=False, current_token=None, token_expires_at=None)

        result = await self.db.execute(
            update(Event)
            .where(Event.id == event_id, Event.host_id == host_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        released = result.rowcount == 1
        if released:
            logger.info(
                "Event %s: %s released the QR host lease%s",
                event_id,
                host_id,
                " and stopped the event" if stop_event else "",
            )
        return released
