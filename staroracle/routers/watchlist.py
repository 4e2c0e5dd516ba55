"""
Watch list endpoints. Objects under continuous observation.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from staroracle.auth import require_permission
from staroracle.database import get_db, serialize_document
from staroracle.errors import NotFound
from staroracle.schemas import DataResponse, MessageResponse, WatchlistItemCreate
from staroracle.watchlist import list_entries, remove_entry, upsert_entry

logger = logging.getLogger("star_oracle.routers.watchlist")

router = APIRouter(prefix="/api/watchlist", tags=["Watch List"])

watchlist_user = require_permission("watchlist:manage")


@router.get("", response_model=DataResponse)
async def get_watchlist(
    current_user: Dict[str, Any] = Depends(watchlist_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Retrieve user's watch list, most recently added first."""
    entries = await list_entries(db, current_user["_id"])
    return {"success": True, "data": [serialize_document(e) for e in entries]}


@router.post("", response_model=MessageResponse)
async def add_to_watchlist(
    item: WatchlistItemCreate,
    current_user: Dict[str, Any] = Depends(watchlist_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Add NEO to watch list. Begin dedicated observation."""
    created = await upsert_entry(db, current_user["_id"], item.asteroid_id, item.asteroid_name, item.notes)
    logger.info(f"Object {item.asteroid_id} {'added to' if created else 'refreshed in'} watch list for {current_user['email']}")
    return {"success": True, "message": "Added to watchlist"}


@router.delete("/{asteroid_id}", response_model=MessageResponse)
async def remove_from_watchlist(
    asteroid_id: str,
    current_user: Dict[str, Any] = Depends(watchlist_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Remove NEO from watch list. Conclude observation."""
    if not await remove_entry(db, current_user["_id"], asteroid_id):
        raise NotFound("Object not found in watch list.")

    logger.info(f"Object {asteroid_id} removed from watch list for {current_user['email']}")
    return {"success": True, "message": "Removed from watchlist"}
