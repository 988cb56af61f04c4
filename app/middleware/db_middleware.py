# app/middleware/db_middleware.py
"""
Lazy Database Connection Middleware.

Retries the MongoDB connection on demand when it was not available at
startup.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import logging

from database import Database
from settings import settings

logger = logging.getLogger(__name__)

# Paths that never touch the document store
DB_FREE_PATHS = {"/", "/health", "/health/detailed", "/docs", "/openapi.json"}


class LazyDatabaseMiddleware(BaseHTTPMiddleware):
    """Connect to MongoDB before handling the first request that needs it."""

    async def dispatch(self, request: Request, call_next):
        """
        Ensure database is connected before processing request.

        Scheduler and processor calls fail fast with 503 when MongoDB is
        unreachable; the trigger retries on its next cycle.
        """
        if request.url.path in DB_FREE_PATHS or Database.is_initialized():
            return await call_next(request)

        try:
            logger.info(f"Lazy initializing MongoDB connection for {request.url.path}...")
            await Database.connect_db(
                database_url=settings.DATABASE_URL,
                database_name=settings.DATABASE_NAME
            )
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            return JSONResponse(
                status_code=503,
                content={"success": False, "error": "Database unavailable"},
            )

        return await call_next(request)
