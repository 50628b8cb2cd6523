from .attendance import AttendanceRecord, AttendanceStatus
from .base import Base
from .dismissal import SuggestionDismissal
from .event import STATIC_TOKEN, Event
from .links import ExcuseLink, ModerationLink
from .series import Series
from .session import AttendanceSession

# for wildcard imports
__all__ = [
    "Base",
    "Series",
    "Event",
    "STATIC_TOKEN",
    "AttendanceSession",
    "AttendanceRecord",
    "AttendanceStatus",
    "SuggestionDismissal",
    "ExcuseLink",
    "ModerationLink",
]
