from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, get_clock
from attendly.database import get_db
from attendly.models.event import Event
from attendly.schemas.event import (
    EventCreate,
    EventRead,
    EventSettingsUpdate,
    HostReleaseRequest,
    HostRequest,
    HostResult,
    QrRead,
)
from attendly.services.events import EventService
from attendly.services.host_lease import HostLeaseService
from attendly.services.sanitize import SeriesSanitizeService
from attendly.services.tokens import TokenRotationService

router = APIRouter(prefix="/events", tags=["events"])


async def _get_event_or_404(event_id: str, db: AsyncSession, clock: Clock) -> Event:
    event = await EventService(db, clock).get(event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return event


async def _ensure_series(series_id: Optional[str], db: AsyncSession) -> None:
    if series_id and await SeriesSanitizeService(db).get_series(series_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown series")


@router.post("", response_model=EventRead, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_in: EventCreate,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await _ensure_series(event_in.series_id, db)
    fields = event_in.model_dump(exclude_unset=True, exclude_none=True)
    name = fields.pop("name")
    return await EventService(db, clock).create(name, **fields)


@router.get("/{event_id}", response_model=EventRead)
async def get_event(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await _get_event_or_404(event_id, db, clock)


@router.patch("/{event_id}/settings", response_model=EventRead)
async def update_event_settings(
    event_id: str,
    settings_in: EventSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Change event settings. Interval and radius are clamped, not rejected.
    """
    event = await _get_event_or_404(event_id, db, clock)
    fields = settings_in.model_dump(exclude_unset=True)
    await _ensure_series(fields.get("series_id"), db)
    for key in ("name", "rotation_enabled", "client_id_check_enabled",
                "client_id_collision_strict", "location_check_enabled", "moderation_enabled"):
        if key in fields and fields[key] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=f"{key} cannot be null"
            )
    return await EventService(db, clock).update_settings(event, **fields)


@router.post("/{event_id}/start", response_model=EventRead)
async def start_event(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    event = await _get_event_or_404(event_id, db, clock)
    return await EventService(db, clock).start(event)


@router.post("/{event_id}/stop", response_model=EventRead)
async def stop_event(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    event = await _get_event_or_404(event_id, db, clock)
    return await EventService(db, clock).stop(event)


@router.get("/{event_id}/qr", response_model=QrRead)
async def poll_qr(
    event_id: str,
    tab_id: Optional[str] = Query(None, description="Organizer tab asking for the code"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Viewer poll: the live token, its scan URL and who is hosting.
    """
    event = await _get_event_or_404(event_id, db, clock)
    return asdict(EventService(db, clock).qr_view(event, tab_id))


# --- Host lease ---
async def _host_result(ok: bool, event_id: str, tab_id: str, db, clock) -> HostResult:
    event = await _get_event_or_404(event_id, db, clock)
    view = EventService(db, clock).qr_view(event, tab_id)
    return HostResult(
        ok=ok,
        is_host=view.is_host,
        token=view.token,
        token_expires_at=view.token_expires_at,
        host_lease_expires_at=view.host_lease_expires_at,
    )


@router.post("/{event_id}/host/claim", response_model=HostResult)
async def claim_host(
    event_id: str,
    request: HostRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await _get_event_or_404(event_id, db, clock)
    claimed = await HostLeaseService(db, clock).claim(event_id, request.tab_id)
    return await _host_result(claimed, event_id, request.tab_id, db, clock)


@router.post("/{event_id}/host/renew", response_model=HostResult)
async def renew_host(
    event_id: str,
    request: HostRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await _get_event_or_404(event_id, db, clock)
    renewed = await HostLeaseService(db, clock).renew(event_id, request.tab_id)
    return await _host_result(renewed, event_id, request.tab_id, db, clock)


@router.post("/{event_id}/host/rotate", response_model=HostResult)
async def rotate_token(
    event_id: str,
    request: HostRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await _get_event_or_404(event_id, db, clock)
    rotated = await TokenRotationService(db, clock).rotate(event_id, request.tab_id)
    return await _host_result(rotated is not None, event_id, request.tab_id, db, clock)


@router.post("/{event_id}/host/release", response_model=HostResult)
async def release_host(
    event_id: str,
    request: HostReleaseRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await _get_event_or_404(event_id, db, clock)
    released = await HostLeaseService(db, clock).release(
        event_id, request.tab_id, stop_event=request.stop_event
    )
    return await _host_result(released, event_id, request.tab_id, db, clock)
