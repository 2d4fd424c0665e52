"""
MongoDB connection management using Motor (async driver).

Architecture decision: single DatabaseClient instance shared across all
requests via a module-level singleton. FastAPI's dependency injection
(get_db / get_store) gives routes clean access without importing the
singleton directly.

Local dev: connects to the Docker Compose mongo container.
Production: connects to MongoDB Atlas (same code, different URI).

The connection is opened in FastAPI's lifespan (startup) and closed
on shutdown.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from greenguardian.core.config import settings
from greenguardian.core.store import DocumentStore

logger = logging.getLogger(__name__)


class DatabaseClient:
    """
    Holds the Motor client, selected database and the store wrapping it.

    A class rather than bare globals so tests can safely replace
    .client, .db and .store.
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None
    store: DocumentStore | None = None


# Module-level singleton — all app code references this object
db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection and validate it with a ping.

    Called once at app startup (via lifespan). Fails gracefully if
    MongoDB is unavailable — the API will still respond but DB-dependent
    endpoints return 503, and the health check reports the real status.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        # certifi's CA bundle so Atlas TLS works without system cert setup
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            tlsCAFile=certifi.where(),
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        db_client.store = DocumentStore(db_client.db)
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "API running in degraded mode — DB endpoints will fail.",
            exc,
        )
        db_client.client = None
        db_client.db = None
        db_client.store = None


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """FastAPI dependency — raw Motor database, or None when MongoDB is down."""
    return db_client.db


def get_store() -> DocumentStore | None:
    """
    FastAPI dependency — the document/blob store.

    Returns None when MongoDB is unavailable so routes can answer 503
    instead of crashing.

    Usage in a route:
        async def my_route(store = Depends(get_store)):
            if store is None:
                raise HTTPException(status_code=503, detail="Database unavailable")
    """
    return db_client.store


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
