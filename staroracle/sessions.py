"""
Server-side sessions.

A session row pairs an issued bearer token with its owner and an expiry.
Deleting the row is the only way to revoke a token before its own ``exp``
claim runs out: the signature stays valid for the full lifetime, so a row
re-created for the same token would make it usable again.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from staroracle.database import SESSIONS
from staroracle.security import hash_token

logger = logging.getLogger("star_oracle.sessions")


class SessionStore:
    """Session rows keyed by token digest."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[SESSIONS]

    async def create(
        self,
        user_id: ObjectId,
        token: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
        ttl: int,
    ) -> Dict[str, Any]:
        if ttl <= 0:
            raise ValueError("Session lifetime must be positive.")
        now = datetime.utcnow()
        session = {
            "user_id": user_id,
            "token_hash": hash_token(token),
            "ip_address": ip_address,
            "user_agent": user_agent,
            "created_at": now,
            "expires_at": now + timedelta(seconds=ttl),
        }
        result = await self.collection.insert_one(session)
        session["_id"] = result.inserted_id
        return session

    async def find(self, token: str) -> Optional[Dict[str, Any]]:
        """The live session for ``token``; expired rows are never returned."""
        return await self.collection.find_one({
            "token_hash": hash_token(token),
            "expires_at": {"$gt": datetime.utcnow()},
        })

    async def delete(self, token: str) -> bool:
        result = await self.collection.delete_one({"token_hash": hash_token(token)})
        return result.deleted_count > 0

    async def delete_all(self, user_id: ObjectId) -> int:
        result = await self.collection.delete_many({"user_id": user_id})
        return result.deleted_count

    async def sweep_expired(self) -> int:
        """Remove rows whose expiry is strictly in the past."""
        result = await self.collection.delete_many({"expires_at": {"$lt": datetime.utcnow()}})
        if result.deleted_count:
            logger.info(f"Swept {result.deleted_count} expired sessions")
        return result.deleted_count

    async def list_for_user(self, user_id: ObjectId, limit: int = 20) -> List[Dict[str, Any]]:
        """Session activity, newest first, without token material."""
        cursor = (
            self.collection.find({"user_id": user_id}, {"token_hash": 0})
            .sort("created_at", DESCENDING)
            .limit(limit)
        )
        return await cursor.to_list(length=limit)

    async def count_active(self, user_id: ObjectId) -> int:
        return await self.collection.count_documents({
            "user_id": user_id,
            "expires_at": {"$gt": datetime.utcnow()},
        })


async def sweep_periodically(store: SessionStore, interval: int):
    """Background task: sweep expired sessions every ``interval`` seconds."""
    logger.info(f"Session sweeper started, interval {interval}s")
    while True:
        await asyncio.sleep(interval)
        try:
            await store.sweep_expired()
        except Exception:
            # Next tick tries again; staleness only costs storage
            logger.exception("Session sweep failed")
