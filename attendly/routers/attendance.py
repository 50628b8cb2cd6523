from typing import Optional

from fastapi import APIRouter, Cookie, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, get_clock
from attendly.config import settings
from attendly.database import get_db
from attendly.redis_config import get_redis
from attendly.schemas.attendance import (
    EventSummary,
    SessionStartRequest,
    SessionStartResponse,
    SessionSubmitRequest,
    SessionSubmitResponse,
)
from attendly.services.sessions import AttendanceSessionService, StartReason, SubmitReason
from attendly.services.verification import Coordinates
from attendly.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/attendance", tags=["attendance"])

# Start reports policy rejections in the body with a 200; only malformed
# requests and server errors change the status code.
START_STATUS = {
    StartReason.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    StartReason.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

SUBMIT_STATUS = {
    SubmitReason.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    SubmitReason.SESSION_INVALID: status.HTTP_404_NOT_FOUND,
    SubmitReason.SESSION_USED: status.HTTP_409_CONFLICT,
    SubmitReason.ALREADY_SUBMITTED: status.HTTP_409_CONFLICT,
    SubmitReason.SESSION_EXPIRED: status.HTTP_410_GONE,
    SubmitReason.INACTIVE: status.HTTP_403_FORBIDDEN,
    SubmitReason.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

SERVER_ERROR_HINT = "Something went wrong. Please scan the QR code again."


def _json(model, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.post("/start", response_model=SessionStartResponse, response_model_by_alias=True)
async def start_session(
    request: SessionStartRequest,
    stored_client_id: Optional[str] = Cookie(None, alias=settings.CLIENT_ID_COOKIE),
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """
    Validate a scanned QR token and open a two-minute attendance session.
    """
    service = AttendanceSessionService(db, cache, clock)
    try:
        outcome = await service.start(
            request.event_id, request.token, request.client_id or stored_client_id
        )
    except Exception:
        logger.exception("attendance start failed for event %s", request.event_id)
        return _json(
            SessionStartResponse(authorized=False, reason=StartReason.SERVER_ERROR.value),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    body = SessionStartResponse(
        authorized=outcome.authorized,
        reason=outcome.reason.value if outcome.reason else None,
        event=EventSummary.model_validate(outcome.event) if outcome.event else None,
        session_id=outcome.session_id,
        session_expires_at=outcome.session_expires_at,
        client_id=outcome.client_id,
    )
    result = _json(body, START_STATUS.get(outcome.reason, status.HTTP_200_OK))
    if outcome.client_id:
        result.set_cookie(
            settings.CLIENT_ID_COOKIE,
            outcome.client_id,
            max_age=settings.CLIENT_ID_COOKIE_MAX_AGE,
            httponly=False,
            samesite="lax",
        )
    return result


@router.post("/submit", response_model=SessionSubmitResponse, response_model_by_alias=True)
async def submit_attendance(
    request: SessionSubmitRequest,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """
    Consume an attendance session and record the attendee.
    """
    location = None
    if request.location is not None:
        location = Coordinates(request.location.lat, request.location.lng)

    service = AttendanceSessionService(db, cache, clock)
    try:
        outcome = await service.submit(
            session_id=request.session_id,
            client_id=request.client_id,
            attendee_name=request.attendee_name,
            attendee_email=request.attendee_email,
            token=request.token,
            location=location,
            location_denied=request.location_denied,
        )
    except Exception:
        logger.exception("attendance submit failed for session %s", request.session_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "reason": SubmitReason.SERVER_ERROR.value,
                "message": SERVER_ERROR_HINT,
            },
        )

    if not outcome.success:
        return _json(
            SessionSubmitResponse(success=False, reason=outcome.reason.value),
            SUBMIT_STATUS.get(outcome.reason, status.HTTP_400_BAD_REQUEST),
        )
    return _json(SessionSubmitResponse(success=True, status=outcome.record.status))
