"""
MongoDB Connection Management
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from typing import Optional
import logging

from opsafe.core.config import settings

logger = logging.getLogger(__name__)

# Global MongoDB client and database
_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def get_database() -> AsyncIOMotorDatabase:
    """
    Return the MongoDB database instance
    A single client is shared by the whole process
    """
    global _client, _database

    if _database is None:
        logger.info("Connecting to MongoDB: %s", settings.MONGO_URL)

        try:
            _client = AsyncIOMotorClient(
                settings.MONGO_URL,
                serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
                connectTimeoutMS=settings.MONGO_CONNECT_TIMEOUT_MS,
            )

            await _client.admin.command('ping')

            _database = _client[settings.DB_NAME]
            logger.info("MongoDB connection established: %s", settings.DB_NAME)

        except PyMongoError as e:
            logger.error("MongoDB connection failed: %s", e)
            _client = None
            raise

    return _database


async def close_database_connection():
    """
    Close the MongoDB connection
    """
    global _client, _database

    if _client is not None:
        logger.info("Closing MongoDB connection...")
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


async def ping_database(db: AsyncIOMotorDatabase) -> bool:
    """
    Check the database connection
    """
    try:
        await db.command('ping')
        return True
    except PyMongoError as e:
        logger.error("Database ping failed: %s", e)
        return False


class Collections:
    """MongoDB collection names"""

    EQUIPMENTS = "equipments"
    ASSIGNMENTS = "assignments"
    MAINTENANCE_ORDERS = "maintenanceOrders"


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """
    Create the indexes the services query by
    """
    equipments = db[Collections.EQUIPMENTS]
    await equipments.create_index(
        [("organization_id", ASCENDING), ("asset_tag", ASCENDING)],
        unique=True,
        partialFilterExpression={"is_deleted": False},
        name="uniq_org_asset_tag",
    )
    await equipments.create_index(
        [("organization_id", ASCENDING), ("is_deleted", ASCENDING), ("created_at", DESCENDING)]
    )

    await db[Collections.ASSIGNMENTS].create_index(
        [
            ("organization_id", ASCENDING),
            ("equipment_id", ASCENDING),
            ("is_deleted", ASCENDING),
            ("created_at", DESCENDING),
        ]
    )

    await db[Collections.MAINTENANCE_ORDERS].create_index(
        [
            ("organization_id", ASCENDING),
            ("equipment_id", ASCENDING),
            ("status", ASCENDING),
            ("is_deleted", ASCENDING),
        ]
    )
    logger.info("MongoDB indexes ensured")


# For dependency injection
async def get_db() -> AsyncIOMotorDatabase:
    """
    Database getter used as a FastAPI dependency
    """
    return await get_database()
