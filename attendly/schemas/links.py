from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from attendly.schemas.attendance import CamelModel, EventSummary
from attendly.schemas.record import RecordRead


# --- Organizer management ---
class ExcuseLinkCreate(BaseModel):
    label: Optional[str] = Field(None, max_length=200, examples=["Sick leave"])
    # Defaults to 30 days from now; must lie in the future.
    expires_at: Optional[datetime] = None


class ModerationLinkCreate(BaseModel):
    label: Optional[str] = Field(None, max_length=200, examples=["Door helper"])


class LinkActiveUpdate(BaseModel):
    is_active: bool


class ShareLinkRead(BaseModel):
    id: str
    event_id: str
    token: str
    label: Optional[str]
    is_active: bool
    created_at: datetime
    url: str

    model_config = ConfigDict(from_attributes=True)


class ExcuseLinkRead(ShareLinkRead):
    expires_at: Optional[datetime]


# --- Excuse flow (attendee facing) ---
class ExcuseStartRequest(CamelModel):
    event_id: str = Field(..., min_length=1, max_length=36)
    token: str = Field(..., min_length=1, max_length=120)


class ExcuseStartResponse(CamelModel):
    authorized: bool
    reason: Optional[str] = Field(
        None, examples=["link_not_found", "link_inactive", "link_expired", "event_missing"]
    )
    event: Optional[EventSummary] = None
    link_label: Optional[str] = None


class ExcuseSubmitRequest(ExcuseStartRequest):
    attendee_name: str = Field(..., min_length=1, max_length=200, examples=["Ada Lovelace"])
    attendee_email: str = Field(..., min_length=3, max_length=320, examples=["ada@example.com"])


class ExcuseSubmitResponse(CamelModel):
    success: bool
    reason: Optional[str] = None


# --- Moderator share links ---
class ModeratorEvent(BaseModel):
    id: str
    name: str
    event_date: Optional[datetime]
    location_name: Optional[str]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ModeratorState(BaseModel):
    authorized: bool
    reason: Optional[str] = None
    link_label: Optional[str] = None
    event: Optional[ModeratorEvent] = None
    records: Optional[List[RecordRead]] = None
