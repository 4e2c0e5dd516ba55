"""
Researcher workspace: notes, session activity, exports, alerts.

Every route needs the ``research`` permission and a researcher profile;
an admin without a profile gets 404 here.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from staroracle.auth import get_session_store, require_permission
from staroracle.config import Settings, get_settings
from staroracle.database import (
    ALERTS,
    RESEARCH_NOTES,
    RESEARCHERS,
    WATCHLIST,
    get_db,
    parse_object_id,
    serialize_document,
)
from staroracle.errors import NotFound, ValidationError
from staroracle.accounts import user_summary
from staroracle.neo import NASANeoClient, export_rows, get_neo_client, resolve_date_range, rows_to_csv
from staroracle.schemas import ApiKeyCheck, DataResponse, MessageResponse, NoteCreate, NoteUpdate, WatchlistItemCreate
from staroracle.sessions import SessionStore
from staroracle.watchlist import list_entries, remove_entry, upsert_entry

logger = logging.getLogger("star_oracle.routers.researcher")

router = APIRouter(prefix="/api/researcher", tags=["Researcher"])

research_user = require_permission("research")


async def get_researcher_profile(
    current_user: Dict[str, Any] = Depends(research_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Dict[str, Any]:
    researcher = await db[RESEARCHERS].find_one({"user_id": current_user["_id"]})
    if researcher is None:
        raise NotFound("Researcher profile not found")
    return researcher


@router.get("/profile", response_model=DataResponse)
async def get_profile(
    current_user: Dict[str, Any] = Depends(research_user),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
):
    return {
        "success": True,
        "data": {
            "user": user_summary(current_user),
            "researcher": serialize_document(researcher),
        },
    }


# === RESEARCH NOTES ===

@router.get("/notes", response_model=DataResponse)
async def get_notes(
    asteroid_id: Optional[str] = Query(None),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Notes for one asteroid, or the latest 50 across all."""
    query: Dict[str, Any] = {"researcher_id": researcher["_id"]}
    if asteroid_id:
        query["asteroid_id"] = asteroid_id
        limit = None
    else:
        limit = 50

    cursor = db[RESEARCH_NOTES].find(query).sort("updated_at", DESCENDING)
    if limit:
        cursor = cursor.limit(limit)
    notes = await cursor.to_list(length=limit)
    return {"success": True, "data": [serialize_document(n) for n in notes]}


@router.post("/notes", status_code=status.HTTP_201_CREATED)
async def create_note(
    note: NoteCreate,
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    now = datetime.utcnow()
    result = await db[RESEARCH_NOTES].insert_one({
        "researcher_id": researcher["_id"],
        "asteroid_id": note.asteroid_id,
        "title": note.title,
        "content": note.content,
        "risk_override": note.risk_override,
        "created_at": now,
        "updated_at": now,
    })
    logger.info(f"Note created on {note.asteroid_id} by researcher {researcher['research_id']}")
    return {"success": True, "message": "Note created", "note_id": str(result.inserted_id)}


@router.put("/notes/{note_id}", response_model=MessageResponse)
async def update_note(
    note_id: str,
    note: NoteUpdate,
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    oid = parse_object_id(note_id)
    if oid is None:
        raise NotFound("Note not found")

    result = await db[RESEARCH_NOTES].update_one(
        {"_id": oid, "researcher_id": researcher["_id"]},
        {"$set": {
            "title": note.title,
            "content": note.content,
            "risk_override": note.risk_override,
            "updated_at": datetime.utcnow(),
        }},
    )
    if result.matched_count == 0:
        raise NotFound("Note not found")
    return {"success": True, "message": "Note updated"}


@router.delete("/notes/{note_id}", response_model=MessageResponse)
async def delete_note(
    note_id: str,
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    oid = parse_object_id(note_id)
    if oid is None:
        raise NotFound("Note not found")

    result = await db[RESEARCH_NOTES].delete_one({"_id": oid, "researcher_id": researcher["_id"]})
    if result.deleted_count == 0:
        raise NotFound("Note not found")
    return {"success": True, "message": "Note deleted"}


# === SESSIONS AND WATCHLIST ===

@router.get("/sessions", response_model=DataResponse)
async def get_sessions(
    current_user: Dict[str, Any] = Depends(research_user),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    sessions: SessionStore = Depends(get_session_store),
):
    """Latest 20 sessions of this account."""
    rows = await sessions.list_for_user(current_user["_id"], limit=20)
    return {"success": True, "data": [serialize_document(r) for r in rows]}


@router.get("/watchlist", response_model=DataResponse)
async def get_watchlist(
    current_user: Dict[str, Any] = Depends(research_user),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Watch list with the number of own notes per asteroid."""
    entries = await list_entries(db, current_user["_id"])
    data = []
    for entry in entries:
        item = serialize_document(entry)
        item["notes_count"] = await db[RESEARCH_NOTES].count_documents({
            "researcher_id": researcher["_id"],
            "asteroid_id": entry["asteroid_id"],
        })
        data.append(item)
    return {"success": True, "data": data}


@router.post("/watchlist", response_model=MessageResponse)
async def add_to_watchlist(
    item: WatchlistItemCreate,
    current_user: Dict[str, Any] = Depends(research_user),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await upsert_entry(db, current_user["_id"], item.asteroid_id, item.asteroid_name, item.notes)
    return {"success": True, "message": "Added to watchlist"}


@router.delete("/watchlist/{asteroid_id}", response_model=MessageResponse)
async def remove_from_watchlist(
    asteroid_id: str,
    current_user: Dict[str, Any] = Depends(research_user),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not await remove_entry(db, current_user["_id"], asteroid_id):
        raise NotFound("Object not found in watch list.")
    return {"success": True, "message": "Removed from watchlist"}


# === EXPORT ===

@router.get("/export")
async def export_data(
    format: str = Query("json", pattern="^(json|csv)$"),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    neo_client: NASANeoClient = Depends(get_neo_client),
    settings: Settings = Depends(get_settings),
):
    """Feed rows as JSON or a CSV attachment."""
    start_date, end_date = resolve_date_range(start_date, end_date, settings.max_feed_days)
    data = await neo_client.get_feed(start_date, end_date)
    rows = export_rows(data)
    logger.info(f"Export of {len(rows)} rows ({format}) by researcher {researcher['research_id']}")

    if format == "csv":
        filename = f"asteroid_data_{start_date}_{end_date}.csv"
        return Response(
            content=rows_to_csv(rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return {"success": True, "data": rows, "count": len(rows)}


# === ALERTS AND DASHBOARD ===

@router.get("/alerts", response_model=DataResponse)
async def get_alerts(
    current_user: Dict[str, Any] = Depends(research_user),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    cursor = db[ALERTS].find({"user_id": current_user["_id"]}).sort("created_at", DESCENDING).limit(30)
    alerts = await cursor.to_list(length=30)
    return {"success": True, "data": [serialize_document(a) for a in alerts]}


@router.put("/alerts/{alert_id}/read", response_model=MessageResponse)
async def mark_alert_read(
    alert_id: str,
    current_user: Dict[str, Any] = Depends(research_user),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    oid = parse_object_id(alert_id)
    if oid is None:
        raise NotFound("Alert not found")
    result = await db[ALERTS].update_one(
        {"_id": oid, "user_id": current_user["_id"]},
        {"$set": {"is_read": True}},
    )
    if result.matched_count == 0:
        raise NotFound("Alert not found")
    return {"success": True, "message": "Alert marked as read"}


@router.get("/stats", response_model=DataResponse)
async def get_stats(
    current_user: Dict[str, Any] = Depends(research_user),
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    db: AsyncIOMotorDatabase = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    """Dashboard counters."""
    user_id = current_user["_id"]
    return {
        "success": True,
        "data": {
            "watchlist_count": await db[WATCHLIST].count_documents({"user_id": user_id}),
            "notes_count": await db[RESEARCH_NOTES].count_documents({"researcher_id": researcher["_id"]}),
            "active_sessions": await sessions.count_active(user_id),
            "unread_alerts": await db[ALERTS].count_documents({"user_id": user_id, "is_read": False}),
        },
    }


@router.post("/apikey", response_model=MessageResponse)
async def check_api_key(
    payload: ApiKeyCheck,
    researcher: Dict[str, Any] = Depends(get_researcher_profile),
    neo_client: NASANeoClient = Depends(get_neo_client),
):
    """Test a NeoWs key with a live call. The key is not stored."""
    if not await neo_client.check_api_key(payload.api_key.strip()):
        raise ValidationError("Invalid API key")
    return {"success": True, "message": "API key is valid"}
