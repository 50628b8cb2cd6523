from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, get_clock
from attendly.database import get_db
from attendly.models.attendance import AttendanceRecord
from attendly.redis_config import get_redis
from attendly.schemas.record import ManualAttendeeCreate, RecordRead, RecordStatusUpdate
from attendly.services.events import EventService
from attendly.services.moderation import ModerationService

router = APIRouter(tags=["records"])


async def _get_record_or_404(service: ModerationService, record_id: str) -> AttendanceRecord:
    record = await service.get_record(record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return record


@router.get("/events/{event_id}/records", response_model=List[RecordRead])
async def list_records(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """
    All records of an event, newest first.
    """
    if await EventService(db, clock).get(event_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return await ModerationService(db, cache, clock).list_records(event_id)


@router.post(
    "/events/{event_id}/records",
    response_model=RecordRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_manual_attendee(
    event_id: str,
    attendee_in: ManualAttendeeCreate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    event = await EventService(db, clock).get(event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")

    service = ModerationService(db, cache, clock)
    try:
        return await service.add_manual_attendee(
            event, attendee_in.attendee_name, attendee_in.attendee_email, attendee_in.status
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.patch("/records/{record_id}/status", response_model=RecordRead)
async def update_record_status(
    record_id: str,
    status_in: RecordStatusUpdate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    service = ModerationService(db, cache, clock)
    record = await _get_record_or_404(service, record_id)
    return await service.update_status(record, status_in.status)


@router.delete("/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    service = ModerationService(db, cache, clock)
    record = await _get_record_or_404(service, record_id)
    await service.delete_record(record)
