"""
MongoDB connection, indexes and write grouping.
Persistent memory across the void.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from staroracle.config import get_settings

logger = logging.getLogger("star_oracle.database")

USERS = "users"
RESEARCHERS = "researchers"
SESSIONS = "sessions"
WATCHLIST = "watchlist"
RESEARCH_NOTES = "research_notes"
USER_PREFERENCES = "user_preferences"
ALERTS = "alerts"


class Database:
    """MongoDB connection manager. Patient and reliable."""

    client: Optional[AsyncIOMotorClient] = None

    @classmethod
    async def connect(cls):
        """Establish connection when application awakens."""
        settings = get_settings()
        cls.client = AsyncIOMotorClient(settings.mongodb_url)
        logger.info("Database connection established. Memory active.")

    @classmethod
    async def disconnect(cls):
        """Close connection gracefully when work concludes."""
        if cls.client:
            cls.client.close()
            cls.client = None
            logger.info("Database connection closed. Rest well.")

    @classmethod
    def get_database(cls) -> AsyncIOMotorDatabase:
        """Access the knowledge repository."""
        if not cls.client:
            raise RuntimeError("Database not connected. Cannot access memory.")
        settings = get_settings()
        return cls.client[settings.database_name]


def get_db() -> AsyncIOMotorDatabase:
    """FastAPI dependency handing out the connected database."""
    return Database.get_database()


def get_transaction_client() -> Optional[AsyncIOMotorClient]:
    """The client to open transactions on, or None when they are disabled."""
    if get_settings().mongo_transactions:
        return Database.client
    return None


async def supports_transactions(client: AsyncIOMotorClient) -> bool:
    """True for replica set members and mongos routers."""
    hello = await client.admin.command("hello")
    return bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"


async def check_write_isolation(client: AsyncIOMotorClient, transactions_enabled: bool):
    """Refuse to start when transactions are expected but unavailable."""
    if not transactions_enabled:
        logger.warning(
            "MONGO_TRANSACTIONS is off: a failed registration is undone by deleting "
            "its documents, and readers may briefly see a partial account"
        )
        return
    if not await supports_transactions(client):
        raise RuntimeError(
            "MongoDB server does not support transactions (not a replica set). "
            "Set MONGO_TRANSACTIONS=false to accept compensating rollback instead."
        )


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """Uniqueness lives in the store, not in handler checks alone."""
    await db[USERS].create_index("email", unique=True)
    await db[USERS].create_index("verification_token")
    await db[RESEARCHERS].create_index("user_id", unique=True)
    await db[RESEARCHERS].create_index("research_id", unique=True)
    await db[SESSIONS].create_index("token_hash", unique=True)
    await db[SESSIONS].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    await db[SESSIONS].create_index("expires_at")
    await db[WATCHLIST].create_index(
        [("user_id", ASCENDING), ("asteroid_id", ASCENDING)], unique=True
    )
    await db[RESEARCH_NOTES].create_index(
        [("researcher_id", ASCENDING), ("updated_at", DESCENDING)]
    )
    await db[USER_PREFERENCES].create_index("user_id", unique=True)
    await db[ALERTS].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])


class UnitOfWork:
    """Groups inserts so they land together or not at all.

    With a client, the inserts run inside a multi-document transaction that
    is committed on clean exit and aborted on error. Without one (standalone
    servers), every document inserted so far is deleted again when the block
    raises, so no partial record outlives the failure.
    """

    def __init__(self, db: AsyncIOMotorDatabase, client: Optional[AsyncIOMotorClient] = None):
        self.db = db
        self.client = client
        self.session = None
        self._inserted: List[Tuple[str, Any]] = []

    async def __aenter__(self):
        if self.client is not None:
            self.session = await self.client.start_session()
            self.session.start_transaction()
        return self

    async def insert(self, collection: str, document: Dict[str, Any]) -> ObjectId:
        result = await self.db[collection].insert_one(document, session=self.session)
        self._inserted.append((collection, result.inserted_id))
        return result.inserted_id

    async def __aexit__(self, exc_type, exc, tb):
        if self.session is not None:
            try:
                if exc_type is None:
                    await self.session.commit_transaction()
                else:
                    await self.session.abort_transaction()
            finally:
                await self.session.end_session()
            return False

        if exc_type is not None:
            for collection, inserted_id in reversed(self._inserted):
                await self.db[collection].delete_one({"_id": inserted_id})
            logger.warning(f"Rolled back {len(self._inserted)} inserted documents")
        return False


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """ObjectId from a string, or None when it cannot be one."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize_document(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a stored document JSON-friendly: ``_id`` becomes ``id``."""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if key == "_id":
            result["id"] = str(value)
        elif isinstance(value, ObjectId):
            result[key] = str(value)
        else:
            result[key] = value
    return result
