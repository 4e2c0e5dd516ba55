"""
Watchlist entries: one per (user, asteroid), re-adding refreshes it.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from staroracle.database import WATCHLIST


async def upsert_entry(
    db: AsyncIOMotorDatabase,
    user_id: ObjectId,
    asteroid_id: str,
    asteroid_name: str,
    notes: Optional[str] = None,
) -> bool:
    """Add or refresh an entry. Returns True when a new entry was created."""
    update: Dict[str, Any] = {
        "$set": {"asteroid_name": asteroid_name, "added_at": datetime.utcnow()},
    }
    if notes is not None:
        update["$set"]["notes"] = notes
    else:
        update["$setOnInsert"] = {"notes": None}

    result = await db[WATCHLIST].update_one(
        {"user_id": user_id, "asteroid_id": asteroid_id},
        update,
        upsert=True,
    )
    return result.upserted_id is not None


async def list_entries(db: AsyncIOMotorDatabase, user_id: ObjectId) -> List[Dict[str, Any]]:
    cursor = db[WATCHLIST].find({"user_id": user_id}).sort("added_at", DESCENDING)
    return await cursor.to_list(length=None)


async def remove_entry(db: AsyncIOMotorDatabase, user_id: ObjectId, asteroid_id: str) -> bool:
    result = await db[WATCHLIST].delete_one({"user_id": user_id, "asteroid_id": asteroid_id})
    return result.deleted_count > 0
