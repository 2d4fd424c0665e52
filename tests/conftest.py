"""
pytest configuration and shared fixtures for the GreenGuardian API tests.

Key concern: tests must not require a live MongoDB.
We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Setting db_client.client / .db / .store = None (disconnected) so the
     health check correctly reports "disconnected" — a valid test-mode state.
  3. Injecting InMemoryStore through app.dependency_overrides[get_store]
     for route tests that need persistence.

InMemoryStore implements the DocumentStore surface (documents, blobs and
subscriptions) over plain dicts. Its subscriptions deliver synchronously on
subscribe and after every write, which is what a change stream does in
production minus the latency.
"""

import asyncio
import inspect
import os
from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")

from greenguardian.core.security import create_access_token  # noqa: E402
from greenguardian.core.store import BLOB_URL_PREFIX, StoredBlob  # noqa: E402


# ── In-memory DocumentStore ───────────────────────────────────────────────────

def _matches(doc: dict, query: dict) -> bool:
    for key, expected in query.items():
        actual = doc.get(key)
        if isinstance(expected, dict) and "$ne" in expected:
            if actual == expected["$ne"]:
                return False
        elif isinstance(expected, dict) and "$in" in expected:
            if actual not in expected["$in"]:
                return False
        elif actual != expected:
            return False
    return True


class _FakeSubscription:
    def __init__(self, owner: "InMemoryStore", entry: tuple):
        self._owner = owner
        self._entry = entry

    @property
    def running(self) -> bool:
        return self._entry in self._owner._subscribers

    async def stop(self) -> None:
        if self._entry in self._owner._subscribers:
            self._owner._subscribers.remove(self._entry)


class InMemoryStore:
    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = {}
        self._blobs: dict[str, StoredBlob] = {}
        self._subscribers: list[tuple] = []
        self.fail_creates = False
        self.fail_uploads = False
        self.uploaded_paths: list[str] = []

    # sync helpers for seeding
    def seed(self, collection: str, doc: dict) -> str:
        doc_id = str(ObjectId())
        self._collections.setdefault(collection, {})[doc_id] = {**doc, "id": doc_id}
        self._notify(collection)
        return doc_id

    def docs(self, collection: str) -> list[dict]:
        return [dict(d) for d in self._collections.get(collection, {}).values()]

    def _notify(self, collection: str) -> None:
        for entry in list(self._subscribers):
            name, query, callback = entry
            if name == collection:
                result = callback([d for d in self.docs(name) if _matches(d, query)])
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)

    # DocumentStore surface
    async def create_document(self, collection: str, data: dict) -> str:
        if self.fail_creates:
            raise RuntimeError("write concern timeout")
        return self.seed(collection, data)

    async def update_document(self, collection: str, doc_id: str, partial: dict) -> bool:
        doc = self._collections.get(collection, {}).get(doc_id)
        if doc is None:
            return False
        doc.update(partial)
        self._notify(collection)
        return True

    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        doc = self._collections.get(collection, {}).get(doc_id)
        return dict(doc) if doc else None

    async def find_one(self, collection: str, query: dict) -> Optional[dict]:
        for doc in self.docs(collection):
            if _matches(doc, query):
                return doc
        return None

    async def find_documents(self, collection, query=None, sort=None, skip=0, limit=0):
        docs = [d for d in self.docs(collection) if _matches(d, query or {})]
        for key, direction in reversed(sort or []):
            docs.sort(key=lambda d: (d.get(key) is not None, d.get(key)), reverse=direction < 0)
        docs = docs[skip:]
        return docs[:limit] if limit else docs

    async def count_documents(self, collection: str, query: Optional[dict] = None) -> int:
        return len(await self.find_documents(collection, query))

    def subscribe(self, collection, on_change, query=None, poll_interval=None):
        entry = (collection, query or {}, on_change)
        self._subscribers.append(entry)
        self._notify(collection)
        return _FakeSubscription(self, entry)

    async def upload_blob(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        if self.fail_uploads:
            raise RuntimeError("blob store unavailable")
        blob_id = str(ObjectId())
        self._blobs[blob_id] = StoredBlob(
            blob_id=blob_id,
            filename=path,
            content_type=content_type or "application/octet-stream",
            data=data,
        )
        self.uploaded_paths.append(path)
        return f"{BLOB_URL_PREFIX}/{blob_id}"

    async def open_blob(self, blob_id: str) -> Optional[StoredBlob]:
        return self._blobs.get(blob_id)


# ── Lifecycle ─────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def mock_db():
    """
    Patch the MongoDB lifecycle and reset process-wide state for every test.

    - connect_to_mongo / close_mongo_connection → no-op AsyncMocks
    - db_client.client / .db / .store → None
    - rate limiter counters, candidate cache and evidence attacher → fresh
    """
    with (
        patch("greenguardian.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("greenguardian.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import greenguardian.core.database as db_module
        import greenguardian.routes.incidents as incidents_routes
        from greenguardian.core.rate_limit import limiter
        from greenguardian.services.candidate_cache import report_candidates

        original = (db_module.db_client.client, db_module.db_client.db, db_module.db_client.store)
        db_module.db_client.client = None
        db_module.db_client.db = None
        db_module.db_client.store = None
        limiter.reset()
        report_candidates.clear()
        incidents_routes._attacher = None

        yield

        db_module.db_client.client, db_module.db_client.db, db_module.db_client.store = original
        report_candidates.clear()
        incidents_routes._attacher = None


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """
    HTTPX async test client wired to the FastAPI app, with no database.

    Usage:
        async def test_something(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from greenguardian.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ── Store-backed fixtures ─────────────────────────────────────────────────────

@pytest.fixture()
def memory_store():
    return InMemoryStore()


@pytest.fixture()
def candidate_cache(memory_store):
    """A candidate cache kept current by a store subscription, as in main.py."""
    from greenguardian.services.candidate_cache import ReportCandidateCache

    cache = ReportCandidateCache(loader=lambda: memory_store.find_documents("incident_reports"))
    memory_store.subscribe("incident_reports", cache.replace)
    return cache


@pytest.fixture()
def make_user(memory_store):
    """Seed a user and return (user_id, bearer headers)."""

    def _make(display_name="Ana Santos", email="ana@example.com", role="citizen"):
        user_id = memory_store.seed(
            "users",
            {"email": email, "display_name": display_name, "role": role, "is_active": True},
        )
        token = create_access_token(user_id)
        return user_id, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture()
def app_overrides(memory_store, candidate_cache):
    from greenguardian.core.database import get_store
    from greenguardian.main import app
    from greenguardian.services.candidate_cache import get_candidate_cache

    app.dependency_overrides[get_store] = lambda: memory_store
    app.dependency_overrides[get_candidate_cache] = lambda: candidate_cache
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
async def api_client(app_overrides):
    async with AsyncClient(transport=ASGITransport(app=app_overrides), base_url="http://test") as ac:
        yield ac
