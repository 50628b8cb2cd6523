from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Attendee-facing payloads are camelCase on the wire.
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocationIn(CamelModel):
    lat: float = Field(..., ge=-90.0, le=90.0, examples=[52.5200])
    lng: float = Field(..., ge=-180.0, le=180.0, examples=[13.4050])


# --- Session start ---
class SessionStartRequest(CamelModel):
    event_id: str = Field(..., min_length=1, max_length=36)
    token: Optional[str] = Field(None, max_length=120, examples=["static"])
    client_id: Optional[str] = Field(None, max_length=120)


class EventSummary(CamelModel):
    id: str
    name: str
    event_date: Optional[datetime] = None
    location_name: Optional[str] = None
    location_check_enabled: bool = False

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class SessionStartResponse(CamelModel):
    authorized: bool
    reason: Optional[str] = Field(
        None,
        examples=["already_submitted", "inactive", "not_found", "expired"],
    )
    event: Optional[EventSummary] = None
    session_id: Optional[str] = None
    session_expires_at: Optional[datetime] = None
    client_id: Optional[str] = None


# --- Session submit ---
class SessionSubmitRequest(CamelModel):
    session_id: str = Field(..., min_length=1, max_length=36)
    token: Optional[str] = Field(None, max_length=120)
    client_id: str = Field(..., min_length=1, max_length=120)
    attendee_name: str = Field(..., min_length=1, max_length=200, examples=["Ada Lovelace"])
    attendee_email: str = Field(..., min_length=3, max_length=320, examples=["ada@example.com"])
    location: Optional[LocationIn] = None
    location_denied: bool = False


class SessionSubmitResponse(CamelModel):
    success: bool
    reason: Optional[str] = Field(
        None,
        examples=["already_submitted", "session_used", "session_expired", "session_invalid"],
    )
    status: Optional[str] = Field(None, examples=["verified", "suspicious"])
