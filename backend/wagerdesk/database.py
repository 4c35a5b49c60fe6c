"""
backend/wagerdesk/database.py

Purpose:
    MongoDB connection bootstrap, index management and the transaction
    helper every match mutation runs inside.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - wagerdesk.config
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING, DESCENDING

from wagerdesk.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("wagerdesk.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


@asynccontextmanager
async def transaction() -> AsyncIterator[Optional[AsyncIOMotorClientSession]]:
    """Yield a session whose writes commit together or not at all.

    Without MONGO_TRANSACTIONS (standalone mongod) the yielded session is None
    and writes are applied one by one.
    """
    if client is None or not settings.MONGO_TRANSACTIONS:
        yield None
        return
    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Wager matches ----
    await db.wager_matches.create_index([("state", ASCENDING), ("checkout_space_ref", ASCENDING)])
    await db.wager_matches.create_index([("group_id", ASCENDING), ("created_at", DESCENDING)])
    await db.wager_matches.create_index(
        "checkout_space_ref",
        name="checkout_space_ref_unique",
        unique=True,
        partialFilterExpression={"checkout_space_ref": {"$type": "string"}},
    )

    # ---- Participants: one row per (match, user) ----
    await db.wager_participants.create_index(
        [("match_id", ASCENDING), ("user_id", ASCENDING)],
        unique=True,
    )
    await db.wager_participants.create_index([("match_id", ASCENDING), ("joined_at", ASCENDING)])

    # ---- Audit log (insert-only) ----
    await db.audit_logs.create_index("seq", unique=True)
    await db.audit_logs.create_index([("match_id", ASCENDING), ("seq", ASCENDING)])

    logger.info("Database indexes ensured")
