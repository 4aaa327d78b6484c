"""
MongoDB Database Configuration and Connection

The connection is opened once, explicitly, from the application lifespan.
Request handlers only ever see the document stores built from it.
"""

import asyncio
import logging

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from pymongo.server_api import ServerApi

from hikeplanner.core.config import (
    DATABASE_BACKEND,
    DATABASE_NAME,
    MONGODB_TIMEOUT_MS,
    MONGODB_URI,
)
from hikeplanner.db.memory import MemoryDocumentStore
from hikeplanner.db.store import DocumentStore, MongoDocumentStore

logger = logging.getLogger(__name__)

USERS = "users"
TRAILS = "trails"
TRIPS = "trips"
RECOMMENDATIONS = "recommendations"
COLLECTIONS = (USERS, TRAILS, TRIPS, RECOMMENDATIONS)

# Secondary indexes per collection; (partitionKey, id) is created for all of them
_INDEXES: dict[str, list[list[tuple[str, int]]]] = {
    USERS: [
        [("email", ASCENDING)],
        [("fitnessLevel", ASCENDING)],
        [("createdAt", DESCENDING)],
        [("location.region", ASCENDING)],
    ],
    TRAILS: [
        [("location.region", ASCENDING), ("ratings.average", DESCENDING)],
        [("characteristics.difficulty", ASCENDING), ("characteristics.distance", ASCENDING)],
        [("characteristics.difficultyRank", ASCENDING)],
        [("ratings.average", DESCENDING)],
        [("location.park", ASCENDING)],
    ],
    TRIPS: [
        [("partitionKey", ASCENDING), ("createdAt", DESCENDING)],
        [("status", ASCENDING), ("createdAt", DESCENDING)],
        [("location.region", ASCENDING), ("dates.startDate", ASCENDING)],
    ],
    RECOMMENDATIONS: [
        [("partitionKey", ASCENDING), ("confidence", DESCENDING)],
        [("trailIds", ASCENDING)],
    ],
}

# Global database client
_client = None
_database = None
_init_lock = asyncio.Lock()


async def connect_database():
    """
    Open the MongoDB connection exactly once.

    Concurrent callers wait on the same lock, so only one client is created.
    """
    global _client, _database

    async with _init_lock:
        if _database is not None:
            return _database
        if not MONGODB_URI:
            raise ValueError("MONGODB_URI environment variable is not set")

        _client = AsyncIOMotorClient(
            MONGODB_URI,
            server_api=ServerApi("1"),
            tz_aware=True,
            timeoutMS=MONGODB_TIMEOUT_MS,
        )
        _database = _client[DATABASE_NAME]
        logger.info(f"✅ Connected to MongoDB database: {DATABASE_NAME}")
        return _database


def get_database():
    """Return the connected database; connect_database() must have run."""
    if _database is None:
        raise RuntimeError("Database is not connected; call connect_database() at startup")
    return _database


async def init_indexes():
    """
    Initialize database indexes for better query performance
    """
    db = get_database()
    try:
        for name in COLLECTIONS:
            collection = db[name]
            await collection.create_index(
                [("partitionKey", ASCENDING), ("id", ASCENDING)], unique=True, name="pk_id"
            )
            for keys in _INDEXES.get(name, []):
                await collection.create_index(keys)

        # Expired recommendations are removed by the server
        await db[RECOMMENDATIONS].create_index("expiresAt", expireAfterSeconds=0)
        logger.info("✅ Database indexes created successfully")
    except PyMongoError as e:
        logger.warning(f"⚠️  Index creation warning: {e}")


async def close_database_connection():
    """
    Close the MongoDB connection
    Call this when shutting down the application
    """
    global _client, _database

    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("🔌 Closed MongoDB connection")


async def test_connection():
    """
    Test the MongoDB connection
    """
    try:
        db = get_database()
        await db.command("ping")
        logger.info("✅ MongoDB connection successful!")
        return True
    except (PyMongoError, RuntimeError) as e:
        logger.error(f"❌ MongoDB connection failed: {e}")
        return False


async def open_document_stores(backend: str = DATABASE_BACKEND) -> dict[str, DocumentStore]:
    """
    Build one document store per collection for the configured backend.
    """
    if backend == "memory":
        logger.info("Using in-memory document stores")
        return {name: MemoryDocumentStore(name) for name in COLLECTIONS}
    if backend != "mongodb":
        raise ValueError(f"Unsupported DATABASE_BACKEND: {backend}")

    db = await connect_database()
    await test_connection()
    await init_indexes()
    return {name: MongoDocumentStore(db[name], name) for name in COLLECTIONS}
