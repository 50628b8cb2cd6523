from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.database import get_db
from attendly.models.series import Series
from attendly.schemas.series import (
    DismissRequest,
    MergeRead,
    MergeRequest,
    NameConflictRead,
    NameConflictResolve,
    NameConflictResolved,
    SeriesCreate,
    SeriesRead,
    SuggestionRead,
)
from attendly.services.sanitize import SeriesSanitizeService

router = APIRouter(prefix="/series", tags=["series"])


async def _get_series_or_404(service: SeriesSanitizeService, series_id: str) -> Series:
    series = await service.get_series(series_id)
    if series is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Series not found")
    return series


@router.post("", response_model=SeriesRead, status_code=status.HTTP_201_CREATED)
async def create_series(series_in: SeriesCreate, db: AsyncSession = Depends(get_db)):
    return await SeriesSanitizeService(db).create_series(series_in.name, series_in.description)


@router.get("/{series_id}/suggestions", response_model=List[SuggestionRead])
async def list_suggestions(
    series_id: str,
    dismissed_by: str = Query("", description="Hide suggestions this organizer dismissed"),
    db: AsyncSession = Depends(get_db),
):
    """
    Email pairs that probably belong to one attendee, strongest first.
    """
    service = SeriesSanitizeService(db)
    await _get_series_or_404(service, series_id)
    suggestions = await service.suggestions(series_id, dismissed_by=dismissed_by)
    return [
        SuggestionRead(
            id=s.id,
            email_a=s.email_a,
            email_b=s.email_b,
            distance=s.distance,
            signals=sorted(s.signals),
            count_a=s.count_a,
            count_b=s.count_b,
            default_canonical=s.default_canonical,
        )
        for s in suggestions
    ]


@router.post("/{series_id}/suggestions/dismiss", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_suggestion(
    series_id: str, request: DismissRequest, db: AsyncSession = Depends(get_db)
):
    service = SeriesSanitizeService(db)
    await _get_series_or_404(service, series_id)
    await service.dismiss(series_id, request.suggestion_id, request.dismissed_by)


@router.post("/{series_id}/merge", response_model=MergeRead)
async def merge_emails(
    series_id: str, request: MergeRequest, db: AsyncSession = Depends(get_db)
):
    service = SeriesSanitizeService(db)
    await _get_series_or_404(service, series_id)
    try:
        result = await service.merge_emails(
            series_id, request.canonical_email, request.replaced_emails, request.attendee_name
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return MergeRead(
        canonical_email=result.canonical_email,
        attendee_name=result.attendee_name,
        emails_updated=result.emails_updated,
        names_updated=result.names_updated,
    )


@router.get("/{series_id}/name-conflicts", response_model=List[NameConflictRead])
async def list_name_conflicts(series_id: str, db: AsyncSession = Depends(get_db)):
    service = SeriesSanitizeService(db)
    await _get_series_or_404(service, series_id)
    conflicts = await service.name_conflicts(series_id)
    return [
        {"email": c.email, "names": [{"name": n, "count": count} for n, count in c.names]}
        for c in conflicts
    ]


@router.post("/{series_id}/name-conflicts/resolve", response_model=NameConflictResolved)
async def resolve_name_conflict(
    series_id: str, request: NameConflictResolve, db: AsyncSession = Depends(get_db)
):
    service = SeriesSanitizeService(db)
    await _get_series_or_404(service, series_id)
    try:
        updated = await service.resolve_name_conflict(series_id, request.email, request.name)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return NameConflictResolved(
        email=request.email.strip().lower(), name=request.name.strip(), records_updated=updated
    )
