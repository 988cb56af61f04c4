# database.py
"""
Reflecta MongoDB Database Connection.

Motor client + Beanie ODM. Beanie creates the scheduler's compound
index on `users` during initialization.
"""

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie
from typing import Optional
import logging

from settings import settings

logger = logging.getLogger(__name__)


def document_models() -> list:
    """Beanie documents registered at startup."""
    from app.models.mongodb import (
        UserDocument,
        CoachingMessageDocument,
        JournalEntryDocument,
        UserInsightDocument,
    )

    return [UserDocument, CoachingMessageDocument, JournalEntryDocument, UserInsightDocument]


class Database:
    """Process-wide MongoDB connection state."""

    client: Optional[AsyncIOMotorClient] = None
    database_name: Optional[str] = None
    _initialized: bool = False

    @classmethod
    async def connect_db(cls, database_url: str, database_name: str):
        """
        Connect to MongoDB and initialize Beanie.

        No-op when already initialized. On failure the client is closed
        and the error re-raised, so a later call starts clean.

        Args:
            database_url: MongoDB connection string
            database_name: Database name to use
        """
        if cls._initialized:
            return

        client = AsyncIOMotorClient(
            database_url,
            serverSelectionTimeoutMS=5000,
            maxPoolSize=50,
            timeoutMS=settings.DATABASE_TIMEOUT_MS,
            tz_aware=True,  # due-time comparisons are done in UTC-aware datetimes
        )

        try:
            await client.admin.command('ping')
            models = document_models()
            await init_beanie(database=client[database_name], document_models=models)
        except Exception as e:
            logger.error(f"Error connecting to MongoDB: {e}")
            client.close()
            raise

        cls.client = client
        cls.database_name = database_name
        cls._initialized = True
        logger.info(f"Connected to MongoDB '{database_name}', {len(models)} document models initialized")

    @classmethod
    async def close_db(cls):
        """Close MongoDB connection."""
        if cls.client:
            cls.client.close()
            logger.info("MongoDB connection closed")
        cls.client = None
        cls._initialized = False

    @classmethod
    async def ping(cls) -> bool:
        """Round-trip to the server; False when not connected or unreachable."""
        if not cls.client:
            return False
        try:
            await cls.client.admin.command('ping')
            return True
        except Exception as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized
