from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, system_clock
from attendly.config import settings
from attendly.models.event import STATIC_TOKEN, Event
from attendly.services.tokens import clamp_rotation_interval
from attendly.services.verification import clamp_radius
from attendly.utils.logging import get_logger

logger = get_logger(__name__)

# Fields an organizer may change through update_settings.
SETTINGS_FIELDS = (
    "name",
    "series_id",
    "event_date",
    "location_name",
    "rotation_enabled",
    "rotation_interval_seconds",
    "client_id_check_enabled",
    "client_id_collision_strict",
    "location_check_enabled",
    "location_lat",
    "location_lng",
    "location_radius_meters",
    "moderation_enabled",
)


@dataclass(frozen=True)
class QrView:
    """What an organizer tab renders on each poll."""

    event_id: str
    is_active: bool
    rotation_enabled: bool
    rotation_interval_seconds: int
    token: str | None
    token_expires_at: datetime | None
    scan_url: str | None
    host_id: str | None
    host_lease_expires_at: datetime | None
    is_host: bool
    poll_interval_seconds: float


def build_scan_url(event_id: str, token: str, origin: str | None = None) -> str:
    base = (origin or settings.PUBLIC_ORIGIN).rstrip("/")
    return f"{base}/attend/{quote(event_id)}?token={quote(token, safe='')}"


class EventService:
    def __init__(self, db: AsyncSession, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    async def get(self, event_id: str) -> Event | None:
        return await self.db.get(Event, event_id, populate_existing=True)

    async def create(self, name: str, **fields) -> Event:
        event = Event(name=name.strip(), is_active=False)
        self._apply_settings(event, fields)
        self.db.add(event)
        await self.db.commit()
        await self.db.refresh(event)
        return event

    async def update_settings(self, event: Event, **fields) -> Event:
        rotation_before = event.rotation_enabled
        self._apply_settings(event, fields)

        if event.is_active and event.rotation_enabled != rotation_before:
            # Keep the token invariant: static sentinel, or empty until a host rotates.
            event.current_token = None if event.rotation_enabled else STATIC_TOKEN
            event.token_expires_at = None
            event.host_id = None
            event.host_lease_expires_at = None

        await self.db.commit()
        await self.db.refresh(event)
        return event

    @staticmethod
    def _apply_settings(event: Event, fields: dict) -> None:
        for key, value in fields.items():
            if key not in SETTINGS_FIELDS:
                raise ValueError(f"Unknown event setting: {key}")
            if key == "rotation_interval_seconds":
                value = clamp_rotation_interval(value)
            elif key == "location_radius_meters":
                value = clamp_radius(value)
            setattr(event, key, value)

    async def start(self, event: Event) -> Event:
        await self.db.execute(
            update(Event)
            .where(Event.id == event.id)
            .values(
                is_active=True,
                current_token=None if event.rotation_enabled else STATIC_TOKEN,
                token_expires_at=None,
                host_id=None,
                host_lease_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info("Event %s started", event.id)
        return await self.get(event.id)

    async def stop(self, event: Event) -> Event:
        await self.db.execute(
            update(Event)
            .where(Event.id == event.id)
            .values(
                is_active=False,
                current_token=None,
                token_expires_at=None,
                host_id=None,
                host_lease_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info("Event %s stopped", event.id)
        return await self.get(event.id)

    def qr_view(self, event: Event, tab_id: str | None = None) -> QrView:
        now = self.clock.now()
        lease_live = (
            event.host_lease_expires_at is not None and event.host_lease_expires_at >= now
        )
        token = event.current_token if event.is_active else None
        return QrView(
            event_id=event.id,
            is_active=event.is_active,
            rotation_enabled=event.rotation_enabled,
            rotation_interval_seconds=clamp_rotation_interval(event.rotation_interval_seconds),
            token=token,
            token_expires_at=event.token_expires_at if token else None,
            scan_url=build_scan_url(event.id, token) if token else None,
            host_id=event.host_id if lease_live else None,
            host_lease_expires_at=event.host_lease_expires_at if lease_live else None,
            is_host=bool(tab_id) and lease_live and event.host_id == tab_id,
            poll_interval_seconds=settings.VIEWER_POLL_SECONDS,
        )
