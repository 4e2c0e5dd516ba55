"""
Request authentication and role gating.
Trust but verify.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, Header
from motor.motor_asyncio import AsyncIOMotorDatabase

from staroracle.database import USERS, get_db, parse_object_id
from staroracle.errors import Forbidden, Unauthenticated
from staroracle.security import InvalidToken, TokenCodec, get_token_codec
from staroracle.sessions import SessionStore

logger = logging.getLogger("star_oracle.auth")

OBSERVER = "observer"
RESEARCHER = "researcher"
ADMIN = "admin"
ROLES = (OBSERVER, RESEARCHER, ADMIN)

# Every role a permission admits is listed; nothing is inherited.
PERMISSIONS = {
    "watchlist:manage": {OBSERVER, RESEARCHER, ADMIN},
    "settings:manage": {OBSERVER, RESEARCHER, ADMIN},
    "research": {RESEARCHER, ADMIN},
    "sessions:sweep": {ADMIN},
}

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """The token from ``Authorization: Bearer <token>``, or None."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token or any(ch.isspace() for ch in token):
        return None
    return token


class Authenticator:
    """Resolves an Authorization header to the live user document."""

    def __init__(self, db: AsyncIOMotorDatabase, codec: TokenCodec, sessions: SessionStore):
        self.db = db
        self.codec = codec
        self.sessions = sessions

    async def resolve(self, authorization: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return the user, or None when the request is unauthenticated."""
        token = extract_bearer_token(authorization)
        if token is None:
            return None

        try:
            claims = self.codec.verify(token)
        except InvalidToken as e:
            logger.debug(f"Rejected credential: {e}")
            return None

        # A cryptographically valid token still needs its session row
        session = await self.sessions.find(token)
        if session is None:
            return None

        user_id = parse_object_id(claims.get("user_id"))
        if user_id is None:
            return None
        return await self.db[USERS].find_one({"_id": user_id})


class AccessPolicy:
    """Role membership checks."""

    @staticmethod
    def require(user: Dict[str, Any], allowed_roles: Iterable[str]) -> Dict[str, Any]:
        if user.get("role") not in set(allowed_roles):
            raise Forbidden()
        return user

    @classmethod
    def require_permission(cls, user: Dict[str, Any], permission: str) -> Dict[str, Any]:
        return cls.require(user, PERMISSIONS[permission])


def get_session_store(db: AsyncIOMotorDatabase = Depends(get_db)) -> SessionStore:
    return SessionStore(db)


def get_authenticator(
    db: AsyncIOMotorDatabase = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    sessions: SessionStore = Depends(get_session_store),
) -> Authenticator:
    return Authenticator(db, codec, sessions)


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    authenticator: Authenticator = Depends(get_authenticator),
) -> Dict[str, Any]:
    """Extract user from bearer token."""
    user = await authenticator.resolve(authorization)
    if user is None:
        raise Unauthenticated()
    return user


def require_permission(permission: str):
    """Dependency factory backed by the ``PERMISSIONS`` table."""
    if permission not in PERMISSIONS:
        raise KeyError(f"Unknown permission: {permission}")

    async def dependency(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        return AccessPolicy.require_permission(user, permission)

    return dependency
