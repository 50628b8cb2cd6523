"""
Attendance sessions: one scan, one submission.

``start`` validates the scanned token and opens a session with an absolute
deadline; ``submit`` consumes it exactly once. The session deadline is
independent of the token's: a form opened on a valid code can be submitted
for the whole window even after the QR has rotated many times.
"""
import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, system_clock
from attendly.config import settings
from attendly.models.attendance import AttendanceRecord
from attendly.models.event import STATIC_TOKEN, Event
from attendly.models.session import AttendanceSession
from attendly.redis_config import CacheClient, attendance_cache_key
from attendly.services.tokens import is_token_stale
from attendly.services.verification import (
    Coordinates,
    VerificationPolicy,
    VerdictStatus,
    evaluate,
)
from attendly.utils.logging import get_logger

logger = get_logger(__name__)


class StartReason(str, Enum):
    ALREADY_SUBMITTED = "already_submitted"
    INACTIVE = "inactive"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID_REQUEST = "invalid_request"
    SERVER_ERROR = "server_error"


class SubmitReason(str, Enum):
    ALREADY_SUBMITTED = "already_submitted"
    SESSION_USED = "session_used"
    SESSION_EXPIRED = "session_expired"
    SESSION_INVALID = "session_invalid"
    INACTIVE = "inactive"
    INVALID_REQUEST = "invalid_request"
    SERVER_ERROR = "server_error"


@dataclass
class StartOutcome:
    authorized: bool
    reason: StartReason | None = None
    event: Event | None = None
    session_id: str | None = None
    session_expires_at: datetime | None = None
    client_id: str | None = None


@dataclass
class SubmitOutcome:
    success: bool
    reason: SubmitReason | None = None
    record: AttendanceRecord | None = None


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def new_client_id() -> str:
    return secrets.token_urlsafe(24)


def collision_client_id() -> str:
    return f"collision-{uuid.uuid4()}"


class AttendanceSessionService:
    def __init__(self, db: AsyncSession, cache: CacheClient, clock: Clock = system_clock):
        self.db = db
        self.cache = cache
        self.clock = clock

    # --- start ---------------------------------------------------------

    async def start(
        self, event_id: str, token: str | None, client_id: str | None = None
    ) -> StartOutcome:
        if not event_id:
            return StartOutcome(False, StartReason.INVALID_REQUEST)

        event = await self.db.get(Event, event_id, populate_existing=True)
        if event is None:
            return StartOutcome(False, StartReason.NOT_FOUND)
        if not event.is_active:
            return StartOutcome(False, StartReason.INACTIVE, event=event)

        now = self.clock.now()
        presented = (token or "").strip()
        if not self._token_accepted(event, presented, now):
            logger.info("Scan for event %s rejected: expired or mismatched token", event_id)
            return StartOutcome(False, StartReason.EXPIRED, event=event)

        client_id = (client_id or "").strip() or new_client_id()

        if event.client_id_check_enabled and event.client_id_collision_strict:
            if await self._already_submitted(event.id, client_id):
                return StartOutcome(
                    False, StartReason.ALREADY_SUBMITTED, event=event, client_id=client_id
                )

        session = AttendanceSession(
            event_id=event.id,
            token=presented,
            token_hash=hash_value(presented),
            client_id_hash=hash_value(client_id),
            created_at=now,
            expires_at=now + timedelta(seconds=settings.SESSION_WINDOW_SECONDS),
        )
        self.db.add(session)
        await self.db.commit()

        return StartOutcome(
            True,
            event=event,
            session_id=session.id,
            session_expires_at=session.expires_at,
            client_id=client_id,
        )

    @staticmethod
    def _token_accepted(event: Event, presented: str, now: datetime) -> bool:
        if not event.rotation_enabled:
            return presented == STATIC_TOKEN
        if not presented or presented != event.current_token:
            return False
        if event.token_expires_at is not None:
            return now < event.token_expires_at
        return not is_token_stale(presented, now)

    async def _already_submitted(self, event_id: str, client_id: str) -> bool:
        key = attendance_cache_key(event_id, client_id)
        try:
            if await self.cache.get(key):
                return True
        except Exception as error:
            logger.warning("Attendance cache read failed, using database: %s", error)
        return await self._client_id_seen(event_id, client_id)

    async def _client_id_seen(self, event_id: str, client_id: str) -> bool:
        query = (
            select(AttendanceRecord.id)
            .where(
                AttendanceRecord.event_id == event_id,
                or_(
                    AttendanceRecord.client_id == client_id,
                    AttendanceRecord.client_id_raw == client_id,
                ),
            )
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none() is not None

    # --- submit --------------------------------------------------------

    async def submit(
        self,
        session_id: str,
        client_id: str,
        attendee_name: str,
        attendee_email: str,
        token: str | None = None,
        location: Coordinates | None = None,
        location_denied: bool = False,
    ) -> SubmitOutcome:
        client_id = (client_id or "").strip()
        name = (attendee_name or "").strip()
        email = (attendee_email or "").strip().lower()
        if not session_id or not client_id or not name or not email:
            return SubmitOutcome(False, SubmitReason.INVALID_REQUEST)

        session = await self.db.get(AttendanceSession, session_id, populate_existing=True)
        if session is None:
            return SubmitOutcome(False, SubmitReason.SESSION_INVALID)

        now = self.clock.now()
        if session.consumed:
            return SubmitOutcome(False, SubmitReason.SESSION_USED)
        if now >= session.expires_at:
            return SubmitOutcome(False, SubmitReason.SESSION_EXPIRED)

        if token is not None and hash_value(token.strip()) != session.token_hash:
            return SubmitOutcome(False, SubmitReason.SESSION_INVALID)
        if hash_value(client_id) != session.client_id_hash:
            return SubmitOutcome(False, SubmitReason.SESSION_INVALID)

        event = await self.db.get(Event, session.event_id, populate_existing=True)
        if event is None:
            return SubmitOutcome(False, SubmitReason.SESSION_INVALID)
        if not event.is_active:
            return SubmitOutcome(False, SubmitReason.INACTIVE)

        # Rollback expires loaded instances, so keep plain values from here on.
        event_id = event.id
        policy = VerificationPolicy.for_event(event)
        provided = policy.geofence_enabled and location is not None and not location_denied

        seen = await self._client_id_seen(event_id, client_id)
        for _ in range(2):
            if not await self._consume(session_id, now):
                return SubmitOutcome(False, SubmitReason.SESSION_USED)

            verdict = evaluate(
                policy, client_id_seen=seen, location=location, location_denied=location_denied
            )
            if verdict.status is VerdictStatus.REJECTED:
                # Undo the consume so only a successful submission uses the session.
                await self.db.rollback()
                return SubmitOutcome(False, SubmitReason.ALREADY_SUBMITTED)

            record = AttendanceRecord(
                event_id=event_id,
                attendee_name=name,
                attendee_email=email,
                client_id=collision_client_id() if seen else client_id,
                client_id_raw=client_id if seen else None,
                status=verdict.status.value,
                suspicious_reason=verdict.reason,
                location_lat=location.lat if provided else None,
                location_lng=location.lng if provided else None,
                location_provided=provided,
                created_at=now,
                updated_at=now,
            )
            self.db.add(record)
            try:
                await self.db.commit()
                break
            except IntegrityError:
                # A concurrent submission from the same device landed first;
                # the rollback also undid the consume.
                await self.db.rollback()
                if seen:
                    return SubmitOutcome(False, SubmitReason.ALREADY_SUBMITTED)
                logger.info("Client id collision on event %s, retrying as a collision", event_id)
                seen = True

        await self.db.refresh(record)
        await self._remember_submission(event_id, client_id)
        logger.info(
            "Attendance recorded for event %s (%s%s)",
            event_id,
            record.status,
            f": {record.suspicious_reason}" if record.suspicious_reason else "",
        )
        return SubmitOutcome(True, record=record)

    async def _consume(self, session_id: str, now: datetime) -> bool:
        result = await self.db.execute(
            update(AttendanceSession)
            .where(
                AttendanceSession.id == session_id,
                AttendanceSession.consumed_at.is_(None),
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _remember_submission(self, event_id: str, client_id: str) -> None:
        try:
            await self.cache.setex(
                attendance_cache_key(event_id, client_id),
                settings.ATTENDANCE_CACHE_TTL_SECONDS,
                "submitted",
            )
        except Exception as error:
            logger.warning("Attendance cache write failed: %s", error)
