"""
Share links: per-event tokens an organizer hands to people without accounts.

Excuse links let absent attendees mark themselves excused. Moderation links
give a helper the organizer's record actions on one event, and only while the
event has moderation switched on. Either kind can be deactivated or deleted
at any time, which revokes it immediately.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Type, TypeVar
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, system_clock
from attendly.config import settings
from attendly.models.attendance import AttendanceRecord, AttendanceStatus
from attendly.models.event import Event
from attendly.models.links import ExcuseLink, ModerationLink
from attendly.redis_config import CacheClient
from attendly.services.events import EventService
from attendly.services.moderation import ModerationService
from attendly.utils.logging import get_logger

logger = get_logger(__name__)

LinkT = TypeVar("LinkT", ExcuseLink, ModerationLink)


class LinkReason(str, Enum):
    INVALID_REQUEST = "invalid_request"
    LINK_NOT_FOUND = "link_not_found"
    LINK_INACTIVE = "link_inactive"
    LINK_EXPIRED = "link_expired"
    EVENT_MISSING = "event_missing"
    MODERATION_DISABLED = "moderation_disabled"
    SERVER_ERROR = "server_error"


@dataclass
class LinkAccess:
    ok: bool
    reason: LinkReason | None = None
    event: Event | None = None
    link: ExcuseLink | ModerationLink | None = None
    record: AttendanceRecord | None = None


def new_link_token() -> str:
    return secrets.token_urlsafe(18)


def build_share_url(link: ExcuseLink | ModerationLink, origin: str | None = None) -> str:
    base = (origin or settings.PUBLIC_ORIGIN).rstrip("/")
    kind = "excuse" if isinstance(link, ExcuseLink) else "moderate"
    return f"{base}/{kind}/{quote(link.event_id)}/{quote(link.token, safe='')}"


class ShareLinkService:
    def __init__(self, db: AsyncSession, cache: CacheClient, clock: Clock = system_clock):
        self.db = db
        self.cache = cache
        self.clock = clock

    # --- Organizer management ---
    async def create_excuse_link(
        self, event: Event, label: str | None = None, expires_at: datetime | None = None
    ) -> ExcuseLink:
        """
        Mint an excuse link. Without an explicit expiry it lasts
        ``EXCUSE_LINK_DEFAULT_DAYS``; an expiry in the past is refused.
        """
        now = self.clock.now()
        if expires_at is None:
            expires_at = now + timedelta(days=settings.EXCUSE_LINK_DEFAULT_DAYS)
        elif expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= now:
            raise ValueError("Expiry must be in the future")
        link = ExcuseLink(
            event_id=event.id,
            token=new_link_token(),
            label=_clean_label(label),
            is_active=True,
            created_at=now,
            expires_at=expires_at,
        )
        return await self._save(link)

    async def create_moderation_link(self, event: Event, label: str | None = None) -> ModerationLink:
        link = ModerationLink(
            event_id=event.id,
            token=new_link_token(),
            label=_clean_label(label),
            is_active=True,
            created_at=self.clock.now(),
        )
        return await self._save(link)

    async def _save(self, link: LinkT) -> LinkT:
        self.db.add(link)
        await self.db.commit()
        await self.db.refresh(link)
        logger.info("%s %s created for event %s", type(link).__name__, link.id, link.event_id)
        return link

    async def get_link(self, model: Type[LinkT], link_id: str) -> LinkT | None:
        return await self.db.get(model, link_id, populate_existing=True)

    async def list_links(self, model: Type[LinkT], event_id: str) -> List[LinkT]:
        query = (
            select(model)
            .where(model.event_id == event_id)
            .order_by(model.created_at.desc(), model.id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def set_active(self, link: LinkT, is_active: bool) -> LinkT:
        link.is_active = is_active
        await self.db.commit()
        await self.db.refresh(link)
        logger.info("Link %s %s", link.id, "activated" if is_active else "deactivated")
        return link

    async def delete_link(self, link: ExcuseLink | ModerationLink) -> None:
        link_id = link.id
        await self.db.delete(link)
        await self.db.commit()
        logger.info("Link %s deleted", link_id)

    # --- Excuse links ---
    async def _find(self, model: Type[LinkT], event_id: str, token: str) -> LinkT | None:
        query = select(model).where(model.event_id == event_id, model.token == token)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def open_excuse(self, event_id: str | None, token: str | None) -> LinkAccess:
        """Check an excuse link and load its event, without writing anything."""
        if not event_id or not token:
            return LinkAccess(False, LinkReason.INVALID_REQUEST)

        link = await self._find(ExcuseLink, event_id, token)
        if link is None:
            return LinkAccess(False, LinkReason.LINK_NOT_FOUND)
        if not link.is_active:
            return LinkAccess(False, LinkReason.LINK_INACTIVE, link=link)
        if link.expires_at is not None and self.clock.now() >= link.expires_at:
            return LinkAccess(False, LinkReason.LINK_EXPIRED, link=link)

        event = await EventService(self.db, self.clock).get(event_id)
        if event is None:
            return LinkAccess(False, LinkReason.EVENT_MISSING, link=link)
        return LinkAccess(True, event=event, link=link)

    async def submit_excuse(
        self,
        event_id: str | None,
        token: str | None,
        attendee_name: str | None,
        attendee_email: str | None,
    ) -> LinkAccess:
        access = await self.open_excuse(event_id, token)
        if not access.ok:
            return access

        moderation = ModerationService(self.db, self.cache, self.clock)
        try:
            access.record = await moderation.add_manual_attendee(
                access.event,
                attendee_name or "",
                attendee_email or "",
                AttendanceStatus.EXCUSED,
                client_id_prefix=f"excuse-{access.link.id}",
            )
        except ValueError:
            access.ok = False
            access.reason = LinkReason.INVALID_REQUEST
            return access
        logger.info("Excuse recorded for event %s via link %s", event_id, access.link.id)
        return access

    # --- Moderation links ---
    async def authorize_moderator(self, event_id: str | None, token: str | None) -> LinkAccess:
        if not event_id or not token:
            return LinkAccess(False, LinkReason.INVALID_REQUEST)

        link = await self._find(ModerationLink, event_id, token)
        if link is None:
            return LinkAccess(False, LinkReason.LINK_NOT_FOUND)
        if not link.is_active:
            return LinkAccess(False, LinkReason.LINK_INACTIVE, link=link)

        event = await EventService(self.db, self.clock).get(event_id)
        if event is None:
            return LinkAccess(False, LinkReason.EVENT_MISSING, link=link)
        if not event.moderation_enabled:
            return LinkAccess(False, LinkReason.MODERATION_DISABLED, event=event, link=link)
        return LinkAccess(True, event=event, link=link)

    async def record_for_event(self, event_id: str, record_id: str) -> AttendanceRecord | None:
        """A record, but only if it belongs to ``event_id``."""
        record = await self.db.get(AttendanceRecord, record_id, populate_existing=True)
        if record is None or record.event_id != event_id:
            return None
        return record

    async def add_moderator_attendee(
        self, event: Event, attendee_name: str, attendee_email: str
    ) -> AttendanceRecord:
        return await ModerationService(self.db, self.cache, self.clock).add_manual_attendee(
            event,
            attendee_name,
            attendee_email,
            AttendanceStatus.VERIFIED,
            client_id_prefix="moderator",
        )


def _clean_label(label: str | None) -> str | None:
    if label is None:
        return None
    return label.strip() or None
