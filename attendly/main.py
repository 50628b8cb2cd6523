import asyncio
import ipaddress
import os
from contextlib import asynccontextmanager

from alembic import command  # type: ignore
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from attendly.config import settings
from attendly.database import engine
from attendly.redis_config import init_cache, shutdown_cache
from attendly.routers import (
    attendance_router,
    events_router,
    excuse_router,
    health_router,
    links_router,
    moderate_router,
    records_router,
    series_router,
)
from attendly.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def run_migrations() -> None:
    root_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    alembic_cfg = Config(os.path.join(root_dir, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(root_dir, "alembic"))
    command.upgrade(alembic_cfg, "head")


# Lifecycle Manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(debug=settings.DEBUG)
    logger.info("Server starting up... DB URL: %s", settings.DATABASE_URL.split("@")[-1])

    if settings.RUN_MIGRATIONS:
        try:
            logger.info("Checking for database migrations...")
            # env.py drives its own event loop, so keep it off ours.
            await asyncio.to_thread(run_migrations)
            logger.info("Database is up to date.")
        except Exception as e:
            logger.warning("Migration warning: %s", e)

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established.")
    except Exception as e:
        logger.critical("Database connection failed! %s", e)

    await init_cache()

    yield

    logger.info("Server shutting down...")
    await shutdown_cache()
    await engine.dispose()


app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _is_loopback_host(host: str | None) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


@app.middleware("http")
async def enforce_local_only_mode(request: Request, call_next):
    if settings.LOCAL_ONLY:
        client_host = request.client.host if request.client else None
        if not _is_loopback_host(client_host):
            return JSONResponse(
                status_code=403,
                content={
                    "detail": "Local-only mode is enabled. Access is allowed only from this machine."
                },
            )
    return await call_next(request)


@app.exception_handler(RequestValidationError)
async def attendee_validation_handler(request: Request, exc: RequestValidationError):
    # Attendee endpoints answer with their own reason codes.
    path = request.url.path
    if path in ("/attendance/start", "/excuse/start"):
        return JSONResponse(
            status_code=400, content={"authorized": False, "reason": "invalid_request"}
        )
    if path in ("/attendance/submit", "/excuse/submit"):
        return JSONResponse(
            status_code=400, content={"success": False, "reason": "invalid_request"}
        )
    return await request_validation_exception_handler(request, exc)


# --- Register Routers ---
app.include_router(attendance_router)
app.include_router(events_router)
app.include_router(records_router)
app.include_router(series_router)
app.include_router(links_router)
app.include_router(excuse_router)
app.include_router(moderate_router)
app.include_router(health_router)


def start():
    import uvicorn

    host = "127.0.0.1" if settings.LOCAL_ONLY else settings.HOST
    uvicorn.run(
        "attendly.main:app",
        host=host,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "docs": "/docs",
        "version": settings.VERSION,
        "local_only": settings.LOCAL_ONLY,
    }
