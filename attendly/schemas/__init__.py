from .attendance import (
    LocationIn,
    SessionStartRequest,
    SessionStartResponse,
    SessionSubmitRequest,
    SessionSubmitResponse,
)
from .event import (
    EventCreate,
    EventRead,
    EventSettingsUpdate,
    HostReleaseRequest,
    HostRequest,
    HostResult,
    QrRead,
)
from .links import (
    ExcuseLinkCreate,
    ExcuseLinkRead,
    ExcuseStartRequest,
    ExcuseStartResponse,
    ExcuseSubmitRequest,
    ExcuseSubmitResponse,
    LinkActiveUpdate,
    ModerationLinkCreate,
    ModeratorState,
    ShareLinkRead,
)
from .record import ManualAttendeeCreate, RecordRead, RecordStatusUpdate
from .series import (
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

__all__ = [
    "LocationIn",
    "SessionStartRequest",
    "SessionStartResponse",
    "SessionSubmitRequest",
    "SessionSubmitResponse",
    "EventCreate",
    "EventRead",
    "EventSettingsUpdate",
    "HostRequest",
    "HostReleaseRequest",
    "HostResult",
    "QrRead",
    "ExcuseLinkCreate",
    "ExcuseLinkRead",
    "ExcuseStartRequest",
    "ExcuseStartResponse",
    "ExcuseSubmitRequest",
    "ExcuseSubmitResponse",
    "LinkActiveUpdate",
    "ModerationLinkCreate",
    "ModeratorState",
    "ShareLinkRead",
    "ManualAttendeeCreate",
    "RecordRead",
    "RecordStatusUpdate",
    "DismissRequest",
    "MergeRead",
    "MergeRequest",
    "NameConflictRead",
    "NameConflictResolve",
    "NameConflictResolved",
    "SeriesCreate",
    "SeriesRead",
    "SuggestionRead",
]
