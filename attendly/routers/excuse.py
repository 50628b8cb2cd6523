from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, get_clock
from attendly.database import get_db
from attendly.redis_config import get_redis
from attendly.schemas.attendance import EventSummary
from attendly.schemas.links import (
    ExcuseStartRequest,
    ExcuseStartResponse,
    ExcuseSubmitRequest,
    ExcuseSubmitResponse,
)
from attendly.services.links import LinkReason, ShareLinkService
from attendly.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/excuse", tags=["excuse"])

START_STATUS = {
    LinkReason.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    LinkReason.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

SUBMIT_STATUS = {
    LinkReason.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    LinkReason.LINK_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LinkReason.LINK_INACTIVE: status.HTTP_403_FORBIDDEN,
    LinkReason.LINK_EXPIRED: status.HTTP_410_GONE,
    LinkReason.EVENT_MISSING: status.HTTP_404_NOT_FOUND,
    LinkReason.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _json(model, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.post("/start", response_model=ExcuseStartResponse, response_model_by_alias=True)
async def start_excuse(
    request: ExcuseStartRequest,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """
    Check an excuse link before showing the form. Link problems come back
    as a reason with a 200.
    """
    try:
        access = await ShareLinkService(db, cache, clock).open_excuse(
            request.event_id, request.token
        )
    except Exception:
        logger.exception("excuse start failed for event %s", request.event_id)
        return _json(
            ExcuseStartResponse(authorized=False, reason=LinkReason.SERVER_ERROR.value),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if not access.ok:
        return _json(
            ExcuseStartResponse(authorized=False, reason=access.reason.value),
            START_STATUS.get(access.reason, status.HTTP_200_OK),
        )
    return _json(
        ExcuseStartResponse(
            authorized=True,
            event=EventSummary.model_validate(access.event),
            link_label=access.link.label,
        )
    )


@router.post("/submit", response_model=ExcuseSubmitResponse, response_model_by_alias=True)
async def submit_excuse(
    request: ExcuseSubmitRequest,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """
    Record the attendee as excused for the link's event.
    """
    try:
        access = await ShareLinkService(db, cache, clock).submit_excuse(
            request.event_id, request.token, request.attendee_name, request.attendee_email
        )
    except Exception:
        logger.exception("excuse submit failed for event %s", request.event_id)
        return _json(
            ExcuseSubmitResponse(success=False, reason=LinkReason.SERVER_ERROR.value),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if not access.ok:
        return _json(
            ExcuseSubmitResponse(success=False, reason=access.reason.value),
            SUBMIT_STATUS.get(access.reason, status.HTTP_400_BAD_REQUEST),
        )
    return _json(ExcuseSubmitResponse(success=True))
