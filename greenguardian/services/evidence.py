"""
evidence.py — Background photo attachment for freshly created reports.

A report is created first with an empty photo list; this module then
uploads the photos to the blob store in parallel and patches the report's
`photos` field once every upload has resolved. The two writes are
independent: if the second phase fails, the report stays in place without
photos. There is no retry and no rollback.

Each attachment's progress is kept in an EvidenceAttachment record so the
outcome can be inspected (GET /api/v1/incidents/{id}/evidence) instead of
vanishing with a fire-and-forget task. Finished records are kept for
`retention` and then dropped; the route falls back to the stored `photos`
field for reports whose record is gone.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from greenguardian.core.store import DocumentStore

logger = logging.getLogger(__name__)

INCIDENT_COLLECTION = "incident_reports"
DEFAULT_RETENTION = timedelta(minutes=30)


class AttachmentStatus(str, Enum):
    NONE = "none"          # report submitted without photos
    PENDING = "pending"
    ATTACHED = "attached"
    FAILED = "failed"


@dataclass
class EvidenceBlob:
    """One decoded photo waiting to be uploaded."""
    filename: str
    data: bytes
    content_type: str = "image/jpeg"


@dataclass
class EvidenceAttachment:
    report_id: str
    photo_count: int
    status: AttachmentStatus = AttachmentStatus.PENDING
    photo_urls: list[str] = field(default_factory=list)
    error: Optional[str] = None
    finished_at: Optional[datetime] = None


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class EvidenceAttacher:
    def __init__(
        self,
        store: DocumentStore,
        collection: str = INCIDENT_COLLECTION,
        clock: Callable[[], datetime] = _utcnow,
        retention: timedelta = DEFAULT_RETENTION,
    ):
        self.store = store
        self._collection = collection
        self._clock = clock
        self._retention = retention
        self._attachments: dict[str, EvidenceAttachment] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def attach_evidence(
        self,
        report_id: str,
        reporter_id: str,
        blobs: list[EvidenceBlob],
    ) -> EvidenceAttachment:
        """
        Start uploading *blobs* for *report_id* and return immediately.

        The returned record is updated in place as the background task
        progresses.
        """
        self.prune()
        attachment = EvidenceAttachment(report_id=report_id, photo_count=len(blobs))
        self._attachments[report_id] = attachment

        if not blobs:
            attachment.status = AttachmentStatus.NONE
            attachment.finished_at = self._clock()
            return attachment

        task = asyncio.create_task(
            self._run(attachment, reporter_id, blobs),
            name=f"evidence:{report_id}",
        )
        self._tasks[report_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(report_id, None))
        return attachment

    def status(self, report_id: str) -> Optional[EvidenceAttachment]:
        self.prune()
        return self._attachments.get(report_id)

    def prune(self) -> int:
        """Drop records that finished more than `retention` ago. Returns how many."""
        cutoff = self._clock() - self._retention
        expired = [
            report_id
            for report_id, attachment in self._attachments.items()
            if attachment.finished_at is not None and attachment.finished_at <= cutoff
        ]
        for report_id in expired:
            del self._attachments[report_id]
        if expired:
            logger.debug("Dropped %d finished evidence record(s)", len(expired))
        return len(expired)

    async def wait(self, report_id: str) -> Optional[EvidenceAttachment]:
        """Wait for the report's attachment task to finish, if one is running."""
        task = self._tasks.get(report_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._attachments.get(report_id)

    async def drain(self) -> None:
        """Let in-flight uploads finish (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def _upload(self, reporter_id: str, blob: EvidenceBlob) -> str:
        stamp = int(self._clock().timestamp() * 1000)
        path = f"incident-reports/{reporter_id}/{stamp}-{blob.filename}"
        return await self.store.upload_blob(path, blob.data, blob.content_type)

    async def _run(
        self,
        attachment: EvidenceAttachment,
        reporter_id: str,
        blobs: list[EvidenceBlob],
    ) -> None:
        report_id = attachment.report_id
        try:
            urls = await asyncio.gather(*(self._upload(reporter_id, b) for b in blobs))
            found = await self.store.update_document(
                self._collection,
                report_id,
                {"photos": list(urls), "last_updated": self._clock()},
            )
            if not found:
                raise LookupError(f"report {report_id} no longer exists")
        except Exception as exc:
            logger.error("Photo attachment failed for report %s: %s", report_id, exc)
            attachment.status = AttachmentStatus.FAILED
            attachment.error = str(exc)
        else:
            attachment.photo_urls = list(urls)
            attachment.status = AttachmentStatus.ATTACHED
            logger.info("Attached %d photo(s) to report %s", len(urls), report_id)
        finally:
            attachment.finished_at = self._clock()
