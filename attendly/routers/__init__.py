from .attendance import router as attendance_router
from .events import router as events_router
from .excuse import router as excuse_router
from .health import router as health_router
from .links import router as links_router
from .moderate import router as moderate_router
from .records import router as records_router
from .series import router as series_router

# for wildcard imports
__all__ = [
    "attendance_router",
    "events_router",
    "excuse_router",
    "health_router",
    "links_router",
    "moderate_router",
    "records_router",
    "series_router",
]
