"""
backend/app/database.py

Purpose:
    MongoDB connection bootstrap and index management for the collections
    the match intel backend reads (predictions) and writes (match_snapshots).

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - app.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from app.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("matchintel.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=2,
        serverSelectionTimeoutMS=int(settings.DATABASE_TIMEOUT_SECONDS * 1000),
    )
    db = client[settings.MONGO_DB]
    try:
        await _ensure_indexes()
    except OperationFailure as exc:
        logger.warning("Index creation failed: %s", exc)


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Predictions (read by the database fallback) ----
    await db.predictions.create_index([("outcome", ASCENDING), ("created_at", DESCENDING)])
    await db.predictions.create_index([("created_at", DESCENDING)])

    # ---- Match snapshots ----
    await db.match_snapshots.create_index([("cache_key", ASCENDING), ("created_at", DESCENDING)])
    await db.match_snapshots.create_index([("sport", ASCENDING), ("created_at", DESCENDING)])
    await db.match_snapshots.create_index(
        "created_at", expireAfterSeconds=settings.SNAPSHOT_RETENTION_DAYS * 86400,
    )
    logger.info("MongoDB indexes ensured")
