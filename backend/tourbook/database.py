"""
Tourbook API: Database Client Management
========================================

What:  Async MongoDB client, database dependency and index bootstrap.
How:   A single pymongo `AsyncMongoClient` is created lazily and shared by all
       requests (it owns its own connection pool). Route handlers receive the
       database through the `get_database` dependency so tests can override it.

Collections:
    tours    - tour documents, 2dsphere index on startLocation
    users    - user documents, unique name and email
    reviews  - review documents, unique (tour, user) pair
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from pymongo import ASCENDING, DESCENDING, GEOSPHERE, AsyncMongoClient, IndexModel
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError, OperationFailure

from tourbook.config import settings
from tourbook.exceptions import StoreError, ValidationError

logger = logging.getLogger(__name__)

TOURS = "tours"
USERS = "users"
REVIEWS = "reviews"

_client: Optional[AsyncMongoClient] = None


def get_client() -> AsyncMongoClient:
    """Returns the process-wide client, creating it on first use."""
    global _client
    if _client is None:
        _client = AsyncMongoClient(
            settings.mongodb_url,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
            tz_aware=True,
        )
    return _client


async def get_database() -> AsyncDatabase:
    """
    FastAPI dependency that provides the application database.

    Usage in a route:
        @router.get("/tours")
        async def get_all_tours(db: AsyncDatabase = Depends(get_database)):
            ...
    """
    return get_client()[settings.mongodb_db]


# ── Index Bootstrap ───────────────────────────────────────────────────────
# Uniqueness lives in the store, so duplicate names, emails and second
# reviews of the same tour fail with DuplicateKeyError (mapped to 400).
INDEXES = {
    TOURS: [
        IndexModel([("name", ASCENDING)], unique=True),
        IndexModel([("price", ASCENDING), ("ratingsAverage", DESCENDING)]),
        IndexModel([("startLocation", GEOSPHERE)]),
    ],
    USERS: [
        IndexModel([("email", ASCENDING)], unique=True),
        IndexModel([("name", ASCENDING)], unique=True),
    ],
    REVIEWS: [
        IndexModel([("tour", ASCENDING), ("user", ASCENDING)], unique=True),
    ],
}


async def ensure_indexes(db: AsyncDatabase) -> None:
    """Creates every index the application relies on. Safe to call repeatedly."""
    for collection_name, indexes in INDEXES.items():
        names = await db[collection_name].create_indexes(indexes)
        logger.info("Indexes ready on %s: %s", collection_name, ", ".join(names))


@contextmanager
def translate_store_errors(resource: str = "document") -> Iterator[None]:
    """
    Maps driver errors raised by rejected operations onto client errors.

    Connection-level failures are left alone and end up as a 500.
    """
    try:
        yield
    except DuplicateKeyError as e:
        key_value = (e.details or {}).get("keyValue") or {}
        value = ", ".join(str(v) for v in key_value.values()) or "unknown"
        raise ValidationError(
            message=f"Duplicate field value: {value}. Please use another value!",
            context={"resource": resource, "key": list(key_value)},
        )
    except OperationFailure as e:
        logger.warning("Store rejected %s operation: %s", resource, e)
        raise StoreError(message=str(e), context={"resource": resource, "code": e.code})


async def ping(db: AsyncDatabase) -> bool:
    await db.command("ping")
    return True


async def close_client() -> None:
    """Closes the pooled connections. Called from the lifespan shutdown."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
