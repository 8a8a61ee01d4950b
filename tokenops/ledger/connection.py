"""
MongoDB Connection Management
Motor client with connection pooling and explicit lifecycle.
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from typing import Optional

from ..config import Settings, get_settings
from ..utils.observability import logger


class DatabaseManager:
    """
    MongoDB client manager with async Motor.
    Owned by the application lifespan; handles connect, indexes and shutdown.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """
        Initialize MongoDB connection with configured pool settings.
        Idempotent - safe to call multiple times.
        """
        if self._client is not None:
            logger.debug("Reusing MongoDB connection")
            return

        settings = self.settings
        logger.info(
            "Connecting to MongoDB",
            extra={
                "database": settings.mongodb_database,
                "max_pool_size": settings.mongodb_max_pool_size,
                "environment": settings.environment
            }
        )
        self._client = AsyncIOMotorClient(
            settings.mongodb_uri,
            maxPoolSize=settings.mongodb_max_pool_size,
            minPoolSize=settings.mongodb_min_pool_size,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
            tz_aware=True,
        )
        self._database = self._client[settings.mongodb_database]

    async def disconnect(self) -> None:
        """
        Close MongoDB connection and cleanup resources.
        Idempotent - safe to call multiple times.
        """
        if self._client is None:
            logger.debug("MongoDB client already disconnected")
            return

        logger.info("Closing MongoDB connection")
        self._client.close()
        self._client = None
        self._database = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """
        Get the database instance.
        Raises RuntimeError if not connected.
        """
        if self._database is None:
            raise RuntimeError(
                "Database not connected. Call await db_manager.connect() first."
            )
        return self._database

    async def ping(self) -> bool:
        await self.database.command("ping")
        return True

    async def create_indexes(self) -> None:
        """
        Create all required indexes for ledger queries.
        Should be called during application startup.
        """
        db = self.database

        logger.info("Creating MongoDB indexes")

        await db.transactions.create_index(
            [("idempotency_key", ASCENDING), ("attempt", ASCENDING)],
            name="idx_idempotency_attempt_unique",
            unique=True,
            partialFilterExpression={"idempotency_key": {"$type": "string"}},
        )
        await db.transactions.create_index("tx_hash", name="idx_tx_hash", sparse=True)
        await db.transactions.create_index(
            [("company_id", ASCENDING), ("created_at", DESCENDING)],
            name="idx_company_created"
        )
        await db.transactions.create_index(
            [("user_id", ASCENDING), ("created_at", DESCENDING)],
            name="idx_user_created"
        )
        await db.transactions.create_index(
            [("status", ASCENDING), ("network", ASCENDING)],
            name="idx_status_network"
        )

        logger.info("MongoDB indexes created successfully")
