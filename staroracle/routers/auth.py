"""
Authentication endpoints.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from staroracle.accounts import (
    authenticate_credentials,
    open_session,
    register_account,
    user_summary,
)
from staroracle.auth import RESEARCHER, extract_bearer_token, get_current_user, get_session_store
from staroracle.config import Settings, get_settings
from staroracle.database import RESEARCHERS, USERS, get_db, get_transaction_client
from staroracle.errors import NotFound, Unauthenticated, ValidationError
from staroracle.schemas import (
    LoginRequest,
    MessageResponse,
    PasswordChangeRequest,
    RegisterRequest,
    RegisterResponse,
    ResearcherLoginRequest,
    TokenResponse,
    VerifyEmailRequest,
)
from staroracle.security import InvalidToken, TokenCodec, get_token_codec, hash_password, verify_password
from staroracle.sessions import SessionStore

logger = logging.getLogger("star_oracle.routers.auth")

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _client_details(request: Request):
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: Optional[AsyncIOMotorClient] = Depends(get_transaction_client),
):
    """Create new account. Begin observation journey."""
    user, researcher = await register_account(db, payload, client)

    summary = user_summary(user)
    if researcher is not None:
        summary["research_id"] = researcher["research_id"]

    # No mail is sent; the link is handed back directly
    return {
        "success": True,
        "message": "Registration successful. Please verify your email address.",
        "user": summary,
        "verification_link": f"/api/auth/verify-email?token={user['verification_token']}",
    }


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db: AsyncIOMotorDatabase = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    sessions: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
):
    """Authenticate existing user. Verify identity."""
    user = await authenticate_credentials(db, payload.email, payload.password)
    ip_address, user_agent = _client_details(request)
    token = await open_session(codec, sessions, settings, user, ip_address, user_agent)

    logger.info(f"Observer authenticated: {user['email']}")
    return {
        "success": True,
        "message": "Login successful",
        "token": token,
        "user": user_summary(user),
        "expires_in": settings.access_token_ttl,
    }


@router.post("/login/researcher", response_model=TokenResponse)
async def login_researcher(
    payload: ResearcherLoginRequest,
    request: Request,
    db: AsyncIOMotorDatabase = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    sessions: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
):
    """Researcher login: credentials plus the organization-issued research ID."""
    user = await authenticate_credentials(db, payload.email, payload.password)
    researcher = None
    if user["role"] == RESEARCHER:
        researcher = await db[RESEARCHERS].find_one({"user_id": user["_id"]})
    if researcher is None:
        raise Unauthenticated("Invalid credentials or account is not a researcher account")
    if researcher["research_id"] != payload.research_id.strip():
        logger.warning(f"Research ID mismatch for {user['email']}")
        raise Unauthenticated("Invalid research ID")

    ip_address, user_agent = _client_details(request)
    token = await open_session(
        codec,
        sessions,
        settings,
        user,
        ip_address,
        user_agent,
        extra_claims={
            "researcher_id": str(researcher["_id"]),
            "research_id": researcher["research_id"],
        },
    )

    logger.info(f"Researcher authenticated: {user['email']}")
    return {
        "success": True,
        "message": "Researcher login successful",
        "token": token,
        "user": user_summary(user, researcher),
        "expires_in": settings.access_token_ttl,
    }


@router.post("/logout", response_model=MessageResponse)
async def logout(
    authorization: Optional[str] = Header(default=None),
    codec: TokenCodec = Depends(get_token_codec),
    sessions: SessionStore = Depends(get_session_store),
):
    """End the session behind the presented token."""
    token = extract_bearer_token(authorization)
    if token is None:
        raise ValidationError("No token provided")
    try:
        codec.verify(token)
    except InvalidToken:
        raise Unauthenticated("Invalid or expired token")

    if await sessions.delete(token):
        return {"success": True, "message": "Logged out successfully"}
    return {"success": True, "message": "Session already ended"}


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    current_user: Dict[str, Any] = Depends(get_current_user),
    sessions: SessionStore = Depends(get_session_store),
):
    """Revoke every session of the current user, this one included."""
    removed = await sessions.delete_all(current_user["_id"])
    logger.info(f"Revoked {removed} sessions for {current_user['email']}")
    return {"success": True, "message": f"Ended {removed} sessions"}


@router.get("/me")
async def me(
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Retrieve current user information. Know thyself."""
    researcher = await db[RESEARCHERS].find_one({"user_id": current_user["_id"]})
    summary = user_summary(current_user, researcher)
    summary["created_at"] = current_user.get("created_at")
    return {"success": True, "data": summary}


async def _verify_email(db: AsyncIOMotorDatabase, token: Optional[str]):
    if not token or not token.strip():
        raise ValidationError("Verification token is required")

    user = await db[USERS].find_one({"verification_token": token.strip()})
    if user is None:
        raise NotFound("Invalid or already used verification token")

    await db[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {"verified": True, "verification_token": None, "updated_at": datetime.utcnow()}},
    )
    logger.info(f"Email verified: {user['email']}")
    return {"success": True, "message": "Email verified successfully"}


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email_link(
    token: Optional[str] = Query(default=None),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await _verify_email(db, token)


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    payload: VerifyEmailRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await _verify_email(db, payload.token)


@router.post("/password", response_model=MessageResponse)
async def change_password(
    payload: PasswordChangeRequest,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    """Replace the password and end every session; the caller logs in again."""
    if not verify_password(payload.current_password, current_user.get("password_hash")):
        raise Unauthenticated("Current password is incorrect")

    await db[USERS].update_one(
        {"_id": current_user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password), "updated_at": datetime.utcnow()}},
    )
    removed = await sessions.delete_all(current_user["_id"])
    logger.info(f"Password changed for {current_user['email']}, {removed} sessions ended")
    return {"success": True, "message": "Password updated. Please login again."}
