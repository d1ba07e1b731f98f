"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.database import async_session_factory, close_db, init_db

# ── Alerting ──
from backend.app.alerts.alert_service import build_dispatcher

# ── API routers ──
from backend.app.api.v1.disasters import router as disaster_router
from backend.app.api.v1.alerts import router as alert_router

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown events."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    if settings.DATABASE_AUTO_CREATE:
        await init_db()

    app.state.dispatcher = build_dispatcher(settings, async_session_factory)
    for channel, status in app.state.dispatcher.channel_status().items():
        if status["configured"]:
            logger.info("Alert channel %s → %s", channel, status["provider"])
        else:
            logger.warning("Alert channel %s has no provider configured", channel)

    yield

    await app.state.dispatcher.close()
    await close_db()
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Disaster monitoring backend: disaster-event CRUD, per-user "
        "proximity alert subscriptions, and email / SMS notification of "
        "nearby moderate and severe events."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_error_handlers(app)

app.include_router(disaster_router)
app.include_router(alert_router)


@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs",
    }


@app.get("/health/live", tags=["health"])
async def liveness():
    """Is the process alive?"""
    return {"status": "alive"}


@app.get("/health", tags=["health"])
async def health_check():
    """Database reachability plus alert channel configuration."""
    database = "healthy"
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Health check: database unreachable: %s", exc)
        database = "unhealthy"

    dispatcher = getattr(app.state, "dispatcher", None)
    body = {
        "status": "healthy" if database == "healthy" else "unhealthy",
        "version": settings.APP_VERSION,
        "database": database,
        "alert_channels": dispatcher.channel_status() if dispatcher else {},
    }
    return JSONResponse(status_code=200 if database == "healthy" else 503, content=body)
