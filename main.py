# main.py
"""
Reflecta Coaching API - Main Application.

FastAPI app with MongoDB backend: hourly coaching scheduler, per-user
processor and development debug endpoint.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from database import Database
from settings import settings
from app.middleware.db_middleware import LazyDatabaseMiddleware
from app.utils.errors import ReflectaException

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            ),
        ],
    )
    logger.info(f"Sentry initialized ({settings.SENTRY_ENVIRONMENT})")
else:
    logger.warning("Sentry DSN not configured - error tracking disabled")

# Import routers
from app.routes import coaching

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info(f"Starting Reflecta Coaching API ({settings.ENV})...")
    # If initialization fails here, LazyDatabaseMiddleware retries on the next request
    try:
        await Database.connect_db(settings.DATABASE_URL, settings.DATABASE_NAME)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.warning(f"Failed to initialize database at startup: {e}")
        logger.warning("Database will be initialized lazily on first request")

    if settings.auth_required and not settings.CRON_SECRET:
        logger.error("CRON_SECRET is not set - scheduler and processor requests will be rejected")

    yield

    await Database.close_db()
    logger.info("Reflecta Coaching API shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Reflecta Coaching API",
    version=VERSION,
    description="Scheduled, quality-gated AI coaching messages for reflection journals",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:19006",  # Expo
        "http://localhost:8081",   # React Native Metro
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Lazy database connection middleware
app.add_middleware(LazyDatabaseMiddleware)


@app.exception_handler(ReflectaException)
async def reflecta_exception_handler(request: Request, exc: ReflectaException):
    """Render application errors as `{success: false, error}`."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


# Health check
@app.get("/health")
async def health_check():
    """Liveness probe - no database round-trip."""
    return {
        "status": "ok",
        "service": "reflecta-coaching",
        "environment": settings.ENV,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION
    }


@app.get("/health/detailed")
async def health_check_detailed():
    """
    Readiness probe.

    Degraded when MongoDB is unreachable; collaborator configuration is
    reported so a misconfigured deploy is visible before the next cron run.
    """
    mongo_ok = await Database.ping()
    return {
        "status": "ok" if mongo_ok else "degraded",
        "database_connected": mongo_ok,
        "database_initialized": Database.is_initialized(),
        "llm_configured": bool(settings.GEMINI_API_KEY),
        "llm_model": settings.GEMINI_MODEL,
        "cron_secret_configured": bool(settings.CRON_SECRET),
        "processor_url": settings.processor_url,
        "environment": settings.ENV,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION
    }


# Include routers
app.include_router(coaching.router, prefix="/coaching", tags=["Coaching"])


# Root endpoint
@app.get("/")
async def root():
    """API root endpoint."""
    return {
        "message": "Reflecta Coaching API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health"
    }
