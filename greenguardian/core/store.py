"""
store.py — Document + blob store boundary over Motor and GridFS.

Everything outside this module talks to MongoDB through DocumentStore,
which exposes the small CRUD / subscription / blob surface the incident
pipeline needs:

    create_document(collection, data)        -> id
    update_document(collection, id, partial) -> bool   ($set merge, last write wins)
    get_document / find_one / find_documents / count_documents
    subscribe(collection, on_change)         -> CollectionSubscription
    upload_blob(path, data, content_type)    -> url
    open_blob(blob_id)                       -> StoredBlob | None

Documents come back as plain dicts with the ObjectId replaced by a string
"id" key, so callers never import bson.

SUBSCRIPTIONS
─────────────
A subscription delivers the FULL current result set to its callback on
every change; consumers treat each delivery as a replacement, not a diff.
It prefers a Motor change stream (collection.watch()) and falls back to
polling when the deployment doesn't support change streams (standalone
mongod, Atlas M0 shared tiers):

    sub = store.subscribe("incident_reports", cache.replace)
    ...
    await sub.stop()
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket
from pymongo.errors import PyMongoError

from greenguardian.core.config import settings

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[list[dict]], Union[None, Awaitable[None]]]

BLOB_URL_PREFIX = "/api/v1/blobs"


@dataclass
class StoredBlob:
    """A blob read back from GridFS."""
    blob_id: str
    filename: str
    content_type: str
    data: bytes


def to_object_id(doc_id: str) -> Optional[ObjectId]:
    """Parse a string id, returning None when it isn't a valid ObjectId."""
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        return None


def _with_id(doc: dict) -> dict:
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc["_id"])
    return out


class DocumentStore:
    """Thin async facade over a Motor database and its GridFS bucket."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        bucket: Optional[AsyncIOMotorGridFSBucket] = None,
    ):
        self._db = db
        self._bucket = bucket

    @property
    def bucket(self) -> AsyncIOMotorGridFSBucket:
        if self._bucket is None:
            self._bucket = AsyncIOMotorGridFSBucket(self._db, bucket_name=settings.blob_bucket_name)
        return self._bucket

    def collection(self, name: str):
        return self._db[name]

    # ── Documents ─────────────────────────────────────────────────────────────

    async def create_document(self, collection: str, data: dict) -> str:
        result = await self._db[collection].insert_one(dict(data))
        return str(result.inserted_id)

    async def update_document(self, collection: str, doc_id: str, partial: dict) -> bool:
        """Merge *partial* into the document. Returns False if it doesn't exist."""
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        result = await self._db[collection].update_one({"_id": oid}, {"$set": partial})
        return result.matched_count > 0

    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        doc = await self._db[collection].find_one({"_id": oid})
        return _with_id(doc) if doc else None

    async def find_one(self, collection: str, query: dict) -> Optional[dict]:
        doc = await self._db[collection].find_one(query)
        return _with_id(doc) if doc else None

    async def find_documents(
        self,
        collection: str,
        query: Optional[dict] = None,
        sort: Optional[list[tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict]:
        cursor = self._db[collection].find(query or {})
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return [_with_id(doc) async for doc in cursor]

    async def count_documents(self, collection: str, query: Optional[dict] = None) -> int:
        return await self._db[collection].count_documents(query or {})

    def subscribe(
        self,
        collection: str,
        on_change: ChangeCallback,
        query: Optional[dict] = None,
        poll_interval: Optional[float] = None,
    ) -> "CollectionSubscription":
        """Start pushing full result sets of *query* to *on_change*."""
        sub = CollectionSubscription(
            self,
            collection,
            on_change,
            query=query,
            poll_interval=poll_interval or settings.candidate_poll_seconds,
        )
        sub.start()
        return sub

    # ── Blobs ─────────────────────────────────────────────────────────────────

    async def upload_blob(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Store *data* under *path* and return the URL it is served from."""
        blob_id = await self.bucket.upload_from_stream(
            path,
            data,
            metadata={"content_type": content_type or "application/octet-stream"},
        )
        logger.debug("Uploaded blob %s (%d bytes) as %s", path, len(data), blob_id)
        return f"{BLOB_URL_PREFIX}/{blob_id}"

    async def open_blob(self, blob_id: str) -> Optional[StoredBlob]:
        oid = to_object_id(blob_id)
        if oid is None:
            return None
        try:
            grid_out = await self.bucket.open_download_stream(oid)
        except NoFile:
            return None
        data = await grid_out.read()
        metadata = grid_out.metadata or {}
        return StoredBlob(
            blob_id=blob_id,
            filename=grid_out.filename,
            content_type=metadata.get("content_type", "application/octet-stream"),
            data=data,
        )


class CollectionSubscription:
    """Background task pushing full snapshots of a collection to a callback."""

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        on_change: ChangeCallback,
        query: Optional[dict] = None,
        poll_interval: float = 15.0,
    ):
        self._store = store
        self._collection = collection
        self._on_change = on_change
        self._query = query or {}
        self._poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"subscription:{self._collection}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _deliver(self) -> None:
        try:
            docs = await self._store.find_documents(self._collection, self._query)
            result: Any = self._on_change(docs)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            # Keep the last snapshot; the next change or poll retries.
            logger.warning("Subscription refresh for %s failed: %s", self._collection, exc)

    async def _run(self) -> None:
        await self._deliver()
        try:
            async with self._store.collection(self._collection).watch() as stream:
                logger.info("Watching %s via change stream", self._collection)
                async for _change in stream:
                    await self._deliver()
        except PyMongoError as exc:
            logger.info(
                "Change streams unavailable for %s (%s); polling every %.0fs",
                self._collection, exc, self._poll_interval,
            )
        while True:
            await asyncio.sleep(self._poll_interval)
            await self._deliver()
