"""
Tourbook API: Test Configuration (conftest.py)
==============================================

What:  Shared pytest fixtures for the entire test suite.
How:   No MongoDB is needed. `FakeDatabase` hands out one MagicMock per
       collection whose driver methods are AsyncMocks; tests set their
       return values and assert on the calls.

Fixture Hierarchy:
    Function-scoped:
    ├── fake_db:      FakeDatabase with fresh collection mocks
    ├── make_user:    factory for stored user documents
    ├── auth_header:  {"Authorization": "Bearer <token>"} for a stored user
    └── test_client:  HTTPX AsyncClient talking to the app, get_database overridden
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Set BEFORE any tourbook import: settings are read at import time
os.environ["MONGODB_URL"] = "mongodb://localhost:27017"
os.environ["MONGODB_DB"] = "tourbook_test"
os.environ["JWT_SECRET"] = "test-secret-not-for-production-use"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RETRY_MAX_ATTEMPTS"] = "2"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["LOG_LEVEL"] = "WARNING"


# ══════════════════════════════════════════════════════════════════════════
# Fake MongoDB
# ══════════════════════════════════════════════════════════════════════════

def make_cursor(docs: Optional[List[Dict[str, Any]]] = None) -> MagicMock:
    """A cursor whose chain methods return itself and whose to_list yields `docs`."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(docs or []))
    return cursor


def make_collection(name: str) -> MagicMock:
    collection = MagicMock()
    collection.name = name
    collection.find = MagicMock(return_value=make_cursor())
    collection.aggregate = AsyncMock(return_value=make_cursor())
    for method in (
        "find_one",
        "insert_one",
        "update_one",
        "find_one_and_update",
        "find_one_and_delete",
        "count_documents",
        "create_indexes",
    ):
        setattr(collection, method, AsyncMock(return_value=None))
    return collection


class FakeDatabase:
    """Dict-style access like AsyncDatabase; each collection is created once."""

    def __init__(self):
        self.collections: Dict[str, MagicMock] = {}
        self.command = AsyncMock(return_value={"ok": 1})

    def __getitem__(self, name: str) -> MagicMock:
        if name not in self.collections:
            self.collections[name] = make_collection(name)
        return self.collections[name]


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


# ══════════════════════════════════════════════════════════════════════════
# Users & Tokens
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user():
    """
    Builds a stored user document.

    Usage:
        admin = make_user(role="admin")
    """

    def _make(**overrides: Any) -> Dict[str, Any]:
        user = {
            "_id": ObjectId(),
            "name": "Laura Wilson",
            "email": "laura@tourbook.io",
            "photo": "default.jpg",
            "role": "user",
            "createdAt": datetime(2024, 1, 15, tzinfo=timezone.utc),
        }
        user.update(overrides)
        return user

    return _make


@pytest.fixture
def auth_header():
    """Returns a function: stored user document → bearer header for it."""
    from tourbook.services.credentials import credential_service

    def _header(user: Dict[str, Any]) -> Dict[str, str]:
        return {"Authorization": f"Bearer {credential_service.issue_token(str(user['_id']))}"}

    return _header


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(fake_db):
    """
    HTTPX AsyncClient routed straight into the app, with `get_database`
    returning `fake_db`.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from tourbook.database import get_database
    from tourbook.main import app

    app.dependency_overrides[get_database] = lambda: fake_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
