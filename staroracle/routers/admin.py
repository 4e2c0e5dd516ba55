"""
Administrative maintenance.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from staroracle.auth import get_session_store, require_permission
from staroracle.sessions import SessionStore

logger = logging.getLogger("star_oracle.routers.admin")

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.post("/sessions/sweep")
async def sweep_sessions(
    current_user: Dict[str, Any] = Depends(require_permission("sessions:sweep")),
    sessions: SessionStore = Depends(get_session_store),
):
    """Remove expired sessions now instead of waiting for the sweeper."""
    removed = await sessions.sweep_expired()
    logger.info(f"Manual session sweep by {current_user['email']}: {removed} removed")
    return {"success": True, "removed": removed}
