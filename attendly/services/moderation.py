import uuid
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, system_clock
from attendly.models.attendance import AttendanceRecord, AttendanceStatus
from attendly.models.event import Event
from attendly.redis_config import CacheClient, attendance_cache_key
from attendly.utils.logging import get_logger

logger = get_logger(__name__)

MANUAL_STATUSES = {AttendanceStatus.VERIFIED, AttendanceStatus.EXCUSED}


class ModerationService:
    """Organizer actions on attendance records after the fact."""

    def __init__(self, db: AsyncSession, cache: CacheClient, clock: Clock = system_clock):
        self.db = db
        self.cache = cache
        self.clock = clock

    async def get_record(self, record_id: str) -> AttendanceRecord | None:
        return await self.db.get(AttendanceRecord, record_id, populate_existing=True)

    async def list_records(self, event_id: str) -> List[AttendanceRecord]:
        query = (
            select(AttendanceRecord)
            .where(AttendanceRecord.event_id == event_id)
            .order_by(AttendanceRecord.created_at.desc())
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_status(
        self, record: AttendanceRecord, status: AttendanceStatus
    ) -> AttendanceRecord:
        record.status = status.value
        if status in (AttendanceStatus.CLEARED, AttendanceStatus.EXCUSED):
            record.suspicious_reason = None
        await self.db.commit()
        await self.db.refresh(record)
        logger.info("Record %s marked %s", record.id, status.value)
        return record

    async def delete_record(self, record: AttendanceRecord) -> None:
        device_client_id = record.device_client_id
        event_id = record.event_id
        await self.db.delete(record)
        await self.db.commit()

        if device_client_id:
            # Let the device check in again once its record is gone.
            try:
                await self.cache.delete(attendance_cache_key(event_id, device_client_id))
            except Exception as error:
                logger.warning("Attendance cache eviction failed: %s", error)
        logger.info("Record %s deleted from event %s", record.id, event_id)

    async def add_manual_attendee(
        self,
        event: Event,
        attendee_name: str,
        attendee_email: str,
        status: AttendanceStatus = AttendanceStatus.VERIFIED,
        client_id_prefix: str = "manual",
    ) -> AttendanceRecord:
        if status not in MANUAL_STATUSES:
            raise ValueError("Manual attendees can only be verified or excused")

        name = attendee_name.strip()
        email = attendee_email.strip().lower()
        if not name or not email:
            raise ValueError("Name and email are required")

        now = self.clock.now()
        record = AttendanceRecord(
            event_id=event.id,
            attendee_name=name,
            attendee_email=email,
            client_id=f"{client_id_prefix}-{uuid.uuid4()}",
            status=status.value,
            location_provided=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return record
