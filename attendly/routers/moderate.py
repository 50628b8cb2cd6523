from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, get_clock
from attendly.database import get_db
from attendly.models.attendance import AttendanceRecord
from attendly.redis_config import get_redis
from attendly.schemas.links import ModeratorEvent, ModeratorState
from attendly.schemas.record import ManualAttendeeCreate, RecordRead, RecordStatusUpdate
from attendly.services.links import LinkAccess, LinkReason, ShareLinkService
from attendly.services.moderation import ModerationService

router = APIRouter(prefix="/moderate/{event_id}/{token}", tags=["moderation links"])


async def _require_moderator(
    event_id: str,
    token: str,
    db: AsyncSession,
    cache,
    clock: Clock,
) -> LinkAccess:
    access = await ShareLinkService(db, cache, clock).authorize_moderator(event_id, token)
    if access.ok:
        return access
    if access.reason is LinkReason.MODERATION_DISABLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Moderation is disabled for this event"
        )
    if access.reason is LinkReason.EVENT_MISSING:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def _record_or_404(
    service: ShareLinkService, event_id: str, record_id: str
) -> AttendanceRecord:
    record = await service.record_for_event(event_id, record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return record


@router.get("", response_model=ModeratorState, response_model_exclude_none=True)
async def moderator_state(
    event_id: str,
    token: str,
    include_attendance: bool = True,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """
    What a moderator page renders. An unusable link answers
    ``authorized: false`` rather than an error status.
    """
    access = await ShareLinkService(db, cache, clock).authorize_moderator(event_id, token)
    if not access.ok:
        return ModeratorState(authorized=False, reason=access.reason.value)

    state = ModeratorState(
        authorized=True,
        link_label=access.link.label,
        event=ModeratorEvent.model_validate(access.event),
    )
    if include_attendance:
        records = await ModerationService(db, cache, clock).list_records(event_id)
        state.records = [RecordRead.model_validate(record) for record in records]
    return state


@router.post("/records", response_model=RecordRead, status_code=status.HTTP_201_CREATED)
async def moderator_add_attendee(
    event_id: str,
    token: str,
    attendee_in: ManualAttendeeCreate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """Moderators can only add verified attendees; ``status`` is ignored."""
    access = await _require_moderator(event_id, token, db, cache, clock)
    try:
        return await ShareLinkService(db, cache, clock).add_moderator_attendee(
            access.event, attendee_in.attendee_name, attendee_in.attendee_email
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.patch("/records/{record_id}/status", response_model=RecordRead)
async def moderator_update_status(
    event_id: str,
    token: str,
    record_id: str,
    status_in: RecordStatusUpdate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    await _require_moderator(event_id, token, db, cache, clock)
    record = await _record_or_404(ShareLinkService(db, cache, clock), event_id, record_id)
    return await ModerationService(db, cache, clock).update_status(record, status_in.status)


@router.delete("/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def moderator_delete_record(
    event_id: str,
    token: str,
    record_id: str,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    await _require_moderator(event_id, token, db, cache, clock)
    record = await _record_or_404(ShareLinkService(db, cache, clock), event_id, record_id)
    await ModerationService(db, cache, clock).delete_record(record)
