from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SeriesCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["Spring lecture series"])
    description: Optional[str] = None


class SeriesRead(BaseModel):
    id: str
    name: str
    description: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SuggestionRead(BaseModel):
    id: str = Field(..., examples=["ada@example.com::ada@exmaple.com"])
    email_a: str
    email_b: str
    distance: int
    signals: List[str]
    count_a: int
    count_b: int
    default_canonical: str


class DismissRequest(BaseModel):
    suggestion_id: str = Field(..., min_length=3, max_length=700)
    dismissed_by: str = Field("", max_length=120)


class MergeRequest(BaseModel):
    canonical_email: str = Field(..., min_length=3, max_length=320)
    replaced_emails: List[str] = Field(..., min_length=1)
    attendee_name: Optional[str] = Field(None, max_length=200)


class MergeRead(BaseModel):
    canonical_email: str
    attendee_name: Optional[str]
    emails_updated: int
    names_updated: int


class NameCount(BaseModel):
    name: str
    count: int


class NameConflictRead(BaseModel):
    email: str
    names: List[NameCount]


class NameConflictResolve(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: str = Field(..., min_length=1, max_length=200)


class NameConflictResolved(BaseModel):
    email: str
    name: str
    records_updated: int
