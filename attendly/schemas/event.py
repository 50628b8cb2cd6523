from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Base Schema (Shared settings) ---
class EventSettings(BaseModel):
    series_id: Optional[str] = None
    event_date: Optional[datetime] = None
    location_name: Optional[str] = Field(None, max_length=200, examples=["Main hall"])

    rotation_enabled: Optional[bool] = None
    # Clamped to [2, 60] by the service.
    rotation_interval_seconds: Optional[int] = Field(None, examples=[3])

    client_id_check_enabled: Optional[bool] = None
    client_id_collision_strict: Optional[bool] = None

    location_check_enabled: Optional[bool] = None
    location_lat: Optional[float] = Field(None, ge=-90.0, le=90.0)
    location_lng: Optional[float] = Field(None, ge=-180.0, le=180.0)
    location_radius_meters: Optional[int] = Field(None, examples=[100])

    moderation_enabled: Optional[bool] = None


# --- Create Schema (Input) ---
class EventCreate(EventSettings):
    name: str = Field(..., min_length=1, max_length=200, examples=["Weekly standup"])


class EventSettingsUpdate(EventSettings):
    name: Optional[str] = Field(None, min_length=1, max_length=200)


# --- Read Schema (Output) ---
class EventRead(BaseModel):
    id: str
    name: str
    series_id: Optional[str]
    event_date: Optional[datetime]
    location_name: Optional[str]
    is_active: bool

    rotation_enabled: bool
    rotation_interval_seconds: int
    token_expires_at: Optional[datetime]
    host_id: Optional[str]
    host_lease_expires_at: Optional[datetime]

    client_id_check_enabled: bool
    client_id_collision_strict: bool
    location_check_enabled: bool
    location_lat: Optional[float]
    location_lng: Optional[float]
    location_radius_meters: int
    moderation_enabled: bool

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QrRead(BaseModel):
    event_id: str
    is_active: bool
    rotation_enabled: bool
    rotation_interval_seconds: int
    token: Optional[str]
    token_expires_at: Optional[datetime]
    scan_url: Optional[str]
    host_id: Optional[str]
    host_lease_expires_at: Optional[datetime]
    is_host: bool
    poll_interval_seconds: float

    model_config = ConfigDict(from_attributes=True)


# --- Host lease ---
class HostRequest(BaseModel):
    tab_id: str = Field(..., min_length=1, max_length=120)


class HostReleaseRequest(HostRequest):
    stop_event: bool = True


class HostResult(BaseModel):
    ok: bool
    is_host: bool
    token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    host_lease_expires_at: Optional[datetime] = None
