from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.clock import Clock, get_clock
from attendly.database import get_db
from attendly.models.event import Event
from attendly.models.links import ExcuseLink, ModerationLink
from attendly.redis_config import get_redis
from attendly.schemas.links import (
    ExcuseLinkCreate,
    ExcuseLinkRead,
    LinkActiveUpdate,
    ModerationLinkCreate,
    ShareLinkRead,
)
from attendly.services.events import EventService
from attendly.services.links import ShareLinkService, build_share_url

router = APIRouter(tags=["share links"])


def _read(link) -> ShareLinkRead:
    schema = ExcuseLinkRead if isinstance(link, ExcuseLink) else ShareLinkRead
    fields = {name: getattr(link, name) for name in schema.model_fields if name != "url"}
    return schema(url=build_share_url(link), **fields)


async def _get_event_or_404(event_id: str, db: AsyncSession, clock: Clock) -> Event:
    event = await EventService(db, clock).get(event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return event


@router.post(
    "/events/{event_id}/excuse-links",
    response_model=ExcuseLinkRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_excuse_link(
    event_id: str,
    link_in: ExcuseLinkCreate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    event = await _get_event_or_404(event_id, db, clock)
    try:
        link = await ShareLinkService(db, cache, clock).create_excuse_link(
            event, link_in.label, link_in.expires_at
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _read(link)


@router.post(
    "/events/{event_id}/moderation-links",
    response_model=ShareLinkRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_moderation_link(
    event_id: str,
    link_in: ModerationLinkCreate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """
    Mint a moderator link. It only works while the event has
    ``moderation_enabled`` switched on.
    """
    event = await _get_event_or_404(event_id, db, clock)
    link = await ShareLinkService(db, cache, clock).create_moderation_link(event, link_in.label)
    return _read(link)


async def _list(model, event_id: str, db: AsyncSession, cache, clock: Clock):
    await _get_event_or_404(event_id, db, clock)
    links = await ShareLinkService(db, cache, clock).list_links(model, event_id)
    return [_read(link) for link in links]


async def _get_link_or_404(service: ShareLinkService, model, link_id: str):
    link = await service.get_link(model, link_id)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")
    return link


@router.get("/events/{event_id}/excuse-links", response_model=List[ExcuseLinkRead])
async def list_excuse_links(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    return await _list(ExcuseLink, event_id, db, cache, clock)


@router.get("/events/{event_id}/moderation-links", response_model=List[ShareLinkRead])
async def list_moderation_links(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    return await _list(ModerationLink, event_id, db, cache, clock)


@router.patch("/excuse-links/{link_id}", response_model=ExcuseLinkRead)
async def set_excuse_link_active(
    link_id: str,
    update_in: LinkActiveUpdate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    service = ShareLinkService(db, cache, clock)
    link = await _get_link_or_404(service, ExcuseLink, link_id)
    return _read(await service.set_active(link, update_in.is_active))


@router.patch("/moderation-links/{link_id}", response_model=ShareLinkRead)
async def set_moderation_link_active(
    link_id: str,
    update_in: LinkActiveUpdate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    service = ShareLinkService(db, cache, clock)
    link = await _get_link_or_404(service, ModerationLink, link_id)
    return _read(await service.set_active(link, update_in.is_active))


@router.delete("/excuse-links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_excuse_link(
    link_id: str,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    service = ShareLinkService(db, cache, clock)
    await service.delete_link(await _get_link_or_404(service, ExcuseLink, link_id))


@router.delete("/moderation-links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_moderation_link(
    link_id: str,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """Revokes the link at once; open moderator pages lose access on their next call."""
    service = ShareLinkService(db, cache, clock)
    await service.delete_link(await _get_link_or_404(service, ModerationLink, link_id))
