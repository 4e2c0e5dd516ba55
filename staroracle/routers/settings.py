"""
Notification preferences.
"""

import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from staroracle.accounts import DEFAULT_PREFERENCES
from staroracle.auth import require_permission
from staroracle.database import USER_PREFERENCES, get_db, serialize_document
from staroracle.schemas import DataResponse, MessageResponse, PreferencesUpdate

logger = logging.getLogger("star_oracle.routers.settings")

router = APIRouter(prefix="/api/settings", tags=["User Preferences"])

settings_user = require_permission("settings:manage")


@router.get("", response_model=DataResponse)
async def get_preferences(
    current_user: Dict[str, Any] = Depends(settings_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Current preferences; the defaults are stored on first read."""
    on_insert = dict(DEFAULT_PREFERENCES, updated_at=datetime.utcnow())
    preferences = await db[USER_PREFERENCES].find_one_and_update(
        {"user_id": current_user["_id"]},
        {"$setOnInsert": on_insert},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return {"success": True, "data": serialize_document(preferences)}


@router.put("", response_model=MessageResponse)
@router.post("", response_model=MessageResponse)
async def update_preferences(
    preferences: PreferencesUpdate,
    current_user: Dict[str, Any] = Depends(settings_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Update user's alert notification preferences. Customize vigilance."""
    values = preferences.model_dump()
    values["updated_at"] = datetime.utcnow()
    await db[USER_PREFERENCES].update_one(
        {"user_id": current_user["_id"]},
        {"$set": values},
        upsert=True,
    )

    logger.info(f"Alert preferences updated for {current_user['email']}")
    return {"success": True, "message": "Settings updated"}
