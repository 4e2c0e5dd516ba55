"""
Account lifecycle: registration, credential checks, session issue.
"""

import logging
import secrets
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from staroracle.auth import RESEARCHER
from staroracle.config import Settings
from staroracle.database import (
    RESEARCHERS,
    USER_PREFERENCES,
    USERS,
    UnitOfWork,
)
from staroracle.errors import Conflict, PersistenceFailure, Unauthenticated
from staroracle.schemas import RegisterRequest
from staroracle.security import TokenCodec, generate_token, hash_password, verify_password
from staroracle.sessions import SessionStore

logger = logging.getLogger("star_oracle.accounts")

DEFAULT_PREFERENCES = {
    "email_alerts": True,
    "sms_alerts": False,
    "push_notifications": True,
}


def generate_research_id() -> str:
    return "RSR-" + secrets.token_hex(4).upper()


def default_preferences(user_id: ObjectId) -> Dict[str, Any]:
    doc = {"user_id": user_id, "updated_at": datetime.utcnow()}
    doc.update(DEFAULT_PREFERENCES)
    return doc


def user_summary(user: Dict[str, Any], researcher: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Public view of a user; never includes hashes or tokens."""
    summary = {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "role": user["role"],
        "verified": bool(user.get("verified", False)),
    }
    if researcher is not None:
        summary["researcher"] = {
            "researcher_id": str(researcher["_id"]),
            "research_id": researcher["research_id"],
            "organization": researcher.get("organization"),
            "specialization": researcher.get("specialization"),
        }
    return summary


async def register_account(
    db: AsyncIOMotorDatabase,
    payload: RegisterRequest,
    client: Optional[AsyncIOMotorClient] = None,
) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """Create the user, its researcher profile and its preferences together.

    Either every document exists afterwards or none does.
    """
    if await db[USERS].find_one({"email": payload.email}):
        raise Conflict("Email already registered")

    research_id = None
    if payload.role == RESEARCHER:
        research_id = payload.research_id.strip() if payload.research_id else None
        if research_id and await db[RESEARCHERS].find_one({"research_id": research_id}):
            raise Conflict("Research ID already registered")
        research_id = research_id or generate_research_id()

    now = datetime.utcnow()
    user = {
        "name": payload.name,
        "email": payload.email,
        "password_hash": hash_password(payload.password),
        "role": payload.role,
        "verified": False,
        "verification_token": generate_token(32),
        "created_at": now,
        "updated_at": now,
    }
    researcher = None

    try:
        async with UnitOfWork(db, client) as uow:
            user["_id"] = await uow.insert(USERS, user)
            if research_id is not None:
                researcher = {
                    "user_id": user["_id"],
                    "research_id": research_id,
                    "organization": payload.organization,
                    "specialization": payload.specialization,
                    "created_at": now,
                }
                researcher["_id"] = await uow.insert(RESEARCHERS, researcher)
            await uow.insert(USER_PREFERENCES, default_preferences(user["_id"]))
    except DuplicateKeyError:
        # Lost a race with a concurrent registration
        raise Conflict("Email or research ID already registered")
    except PyMongoError:
        logger.exception(f"Registration failed for {payload.email}")
        raise PersistenceFailure("Registration failed. Please try again.")

    logger.info(f"New {payload.role} registered: {payload.email}")
    return user, researcher


async def authenticate_credentials(db: AsyncIOMotorDatabase, email: str, password: str) -> Dict[str, Any]:
    """The user owning ``email`` if ``password`` matches."""
    user = await db[USERS].find_one({"email": email})
    if not user or not verify_password(password, user.get("password_hash")):
        logger.warning(f"Failed login for {email}")
        raise Unauthenticated("Invalid email or password")
    return user


async def open_session(
    codec: TokenCodec,
    sessions: SessionStore,
    settings: Settings,
    user: Dict[str, Any],
    ip_address: Optional[str],
    user_agent: Optional[str],
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Sign a token for ``user`` and record its session row."""
    claims = {
        "user_id": str(user["_id"]),
        "email": user["email"],
        "role": user["role"],
        # Distinguishes tokens issued to the same user within one second
        "jti": generate_token(16),
    }
    if extra_claims:
        claims.update(extra_claims)

    token = codec.issue(claims, settings.access_token_ttl)
    await sessions.create(user["_id"], token, ip_address, user_agent, settings.session_ttl)
    return token
