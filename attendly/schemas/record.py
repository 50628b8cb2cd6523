from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from attendly.models.attendance import AttendanceStatus


class RecordRead(BaseModel):
    id: str
    event_id: str
    attendee_name: str
    attendee_email: str
    client_id: str
    client_id_raw: Optional[str]
    status: AttendanceStatus
    suspicious_reason: Optional[str]
    location_lat: Optional[float]
    location_lng: Optional[float]
    location_provided: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecordStatusUpdate(BaseModel):
    status: AttendanceStatus = Field(..., examples=["cleared"])


class ManualAttendeeCreate(BaseModel):
    attendee_name: str = Field(..., min_length=1, max_length=200, examples=["Ada Lovelace"])
    attendee_email: str = Field(..., min_length=3, max_length=320, examples=["ada@example.com"])
    status: AttendanceStatus = AttendanceStatus.VERIFIED
