"""
submission.py — Incident submission orchestration.

One IncidentSubmission object follows a single citizen's draft from first
keystroke to stored report:

    drafting ──(title + description + GPS present, 1 s quiet)──► duplicate-check
    duplicate-check ──(matches)──► warned ──(edit / acknowledge)──► drafting
    duplicate-check ──(no matches)──► drafting
    drafting / warned ──submit()──► submitting ──► submitted | failed

HOW A SUBMISSION IS GATED
─────────────────────────
Checked in this order; the first failure stops the submission:

  1. title, description and address must be non-empty   → IncidentValidationError
  2. GPS coordinates must be present                     → IncidentValidationError
  3. no photos attached and not confirmed                → ConfirmationRequired("no_photos")
  4. similar reports found and warning not dismissed     → ConfirmationRequired("possible_duplicate")

The duplicate check is re-run right before gate 3, against the current
candidate snapshot, even if a debounced check already ran.

WHAT A SUBMISSION WRITES
────────────────────────
  1. reputation (from the reporter's history) and priority band
  2. create_report_skeleton(): the report document, photos empty
  3. EvidenceAttacher.attach_evidence(): photos uploaded + patched in the
     background; the caller does not wait for it
  4. the draft is reset

A failure in step 1 or 2 raises ReportPersistenceError, keeps the draft and
moves to `failed`; nothing is retried.

The HTTP route builds a throwaway IncidentSubmission per request; the draft
WebSocket keeps one per connection and gets debounced check results through
the on_check callback.
"""

import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from greenguardian.core.config import settings
from greenguardian.core.store import DocumentStore
from greenguardian.models.incident import (
    AccuracyRecord,
    IncidentDraft,
    ReportSummary,
    SimilarReportOut,
)
from greenguardian.models.user import ReporterProfile
from greenguardian.services.candidate_cache import ReportCandidateCache
from greenguardian.services.debounce import Debouncer
from greenguardian.services.duplicate_detector import find_similar_reports, top_matches
from greenguardian.services.evidence import (
    INCIDENT_COLLECTION,
    EvidenceAttacher,
    EvidenceAttachment,
    EvidenceBlob,
)
from greenguardian.services.priority_scorer import compute_priority
from greenguardian.services.reputation import compute_reputation

logger = logging.getLogger(__name__)

NO_PHOTOS = "no_photos"
POSSIBLE_DUPLICATE = "possible_duplicate"

_NO_PHOTOS_PROMPT = (
    "Reports with photos have higher credibility. Continue without photos?"
)
_DUPLICATE_PROMPT = (
    "Similar reports were filed nearby in the last 7 days. "
    "Submit anyway only if this is a different incident."
)
_SUBMIT_FAILED = "Failed to submit report. Please try again."


class SubmissionState(str, Enum):
    DRAFTING = "drafting"
    DUPLICATE_CHECK = "duplicate-check"
    WARNED = "warned"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"


# ── Errors ────────────────────────────────────────────────────────────────────

class SubmissionError(Exception):
    """Base class for anything that stops a submission."""


class IncidentValidationError(SubmissionError):
    """A required field is missing. The user must fix the draft."""


class ConfirmationRequired(SubmissionError):
    """Advisory prompt the user can override by resubmitting with a flag set."""

    def __init__(
        self,
        kind: str,
        message: str,
        similar_reports: Optional[list[SimilarReportOut]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.similar_reports = similar_reports or []


class ReportPersistenceError(SubmissionError):
    """Creating the report failed. The draft is kept so the user can retry."""


# ── Result ────────────────────────────────────────────────────────────────────

@dataclass
class SubmissionResult:
    report_id: str
    document: dict
    priority: str
    reputation: int
    related_reports: list[str]
    evidence: EvidenceAttachment


CheckCallback = Callable[["IncidentSubmission"], Union[None, Awaitable[None]]]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class IncidentSubmission:
    def __init__(
        self,
        store: DocumentStore,
        candidates: ReportCandidateCache,
        attacher: EvidenceAttacher,
        reporter: ReporterProfile,
        *,
        draft: Optional[IncidentDraft] = None,
        debounce_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
        on_check: Optional[CheckCallback] = None,
    ):
        self._store = store
        self._candidates = candidates
        self._attacher = attacher
        self.reporter = reporter
        self.draft = draft or IncidentDraft()
        self.state = SubmissionState.DRAFTING
        self.similar_reports: list[ReportSummary] = []
        self._acknowledged_ids: set[str] = set()
        self._clock = clock
        self._on_check = on_check
        delay = settings.duplicate_check_debounce_seconds if debounce_seconds is None else debounce_seconds
        self._debouncer = Debouncer(delay)

    # ── Draft editing ─────────────────────────────────────────────────────────

    @property
    def ready_for_check(self) -> bool:
        d = self.draft
        return bool(d.title.strip() and d.description.strip() and d.coordinates is not None)

    @property
    def duplicate_warning_dismissed(self) -> bool:
        ids = {m.id for m in self.similar_reports}
        return bool(ids) and ids <= self._acknowledged_ids

    @property
    def check_pending(self) -> bool:
        return self._debouncer.pending

    def update_draft(self, **changes: Any) -> None:
        """Apply edits and (re)arm the debounced duplicate check."""
        self.draft = IncidentDraft.model_validate({**self.draft.model_dump(), **changes})
        self.state = SubmissionState.DRAFTING
        if self.ready_for_check:
            self._debouncer.schedule(self._debounced_check)
        else:
            self._debouncer.cancel()

    async def wait_for_check(self) -> None:
        await self._debouncer.wait()

    def close(self) -> None:
        """Drop any scheduled check (the editing session ended)."""
        self._debouncer.cancel()

    async def _debounced_check(self) -> None:
        await self.check_duplicates()
        if self._on_check is not None:
            result = self._on_check(self)
            if inspect.isawaitable(result):
                await result

    # ── Duplicate check ───────────────────────────────────────────────────────

    async def check_duplicates(self) -> list[ReportSummary]:
        self.state = SubmissionState.DUPLICATE_CHECK
        candidates = await self._candidates.get_candidates()
        self.similar_reports = find_similar_reports(
            self.draft, self.reporter.id, candidates, self._clock()
        )
        if not self.similar_reports:
            self.state = SubmissionState.DRAFTING
        elif self.duplicate_warning_dismissed:
            self.state = SubmissionState.DRAFTING
        else:
            self.state = SubmissionState.WARNED
        logger.debug(
            "Duplicate check for %s: %d match(es)", self.reporter.id, len(self.similar_reports)
        )
        return self.similar_reports

    def acknowledge_duplicates(self) -> None:
        """The user says this is a different incident from the current matches."""
        self._acknowledged_ids = {m.id for m in self.similar_reports}
        if self.state == SubmissionState.WARNED:
            self.state = SubmissionState.DRAFTING

    def warning(self) -> list[SimilarReportOut]:
        return top_matches(self.similar_reports, self.draft)

    # ── Submission ────────────────────────────────────────────────────────────

    def validate(self) -> None:
        d = self.draft
        if not (d.title.strip() and d.description.strip() and d.address.strip()):
            raise IncidentValidationError("Title, description and address are required.")
        if d.coordinates is None:
            raise IncidentValidationError(
                "GPS location is required. Capture your location before submitting."
            )

    async def submit(
        self,
        photos: list[EvidenceBlob],
        *,
        confirm_no_photos: bool = False,
        acknowledge_duplicates: bool = False,
    ) -> SubmissionResult:
        self._debouncer.cancel()
        self.validate()

        await self.check_duplicates()

        if not photos and not confirm_no_photos:
            raise ConfirmationRequired(NO_PHOTOS, _NO_PHOTOS_PROMPT)

        if acknowledge_duplicates:
            self.acknowledge_duplicates()
        if self.similar_reports and not self.duplicate_warning_dismissed:
            raise ConfirmationRequired(POSSIBLE_DUPLICATE, _DUPLICATE_PROMPT, self.warning())

        self.state = SubmissionState.SUBMITTING
        try:
            history = await self._store.find_documents(
                INCIDENT_COLLECTION, {"reporter_id": self.reporter.id}
            )
            reputation = compute_reputation(history)
            priority = compute_priority(
                self.draft.incident_type,
                photo_count=len(photos),
                has_coordinates=self.draft.coordinates is not None,
                reputation=reputation,
            )
            report_id, document = await self.create_report_skeleton(priority, reputation)
        except Exception as exc:
            self.state = SubmissionState.FAILED
            logger.error("Report submission failed for %s: %s", self.reporter.id, exc)
            raise ReportPersistenceError(_SUBMIT_FAILED) from exc

        evidence = self._attacher.attach_evidence(report_id, self.reporter.id, photos)
        logger.info(
            "Report %s created by %s (priority=%s, reputation=%d, related=%d, photos=%d)",
            report_id, self.reporter.id, priority, reputation,
            len(document["related_reports"]), len(photos),
        )

        self.state = SubmissionState.SUBMITTED
        self._reset_draft()
        return SubmissionResult(
            report_id=report_id,
            document=document,
            priority=priority,
            reputation=reputation,
            related_reports=document["related_reports"],
            evidence=evidence,
        )

    async def create_report_skeleton(self, priority: str, reputation: int) -> tuple[str, dict]:
        """First write: the report with derived fields and no photos yet."""
        d = self.draft
        now = self._clock()
        doc = {
            "reporter_id": self.reporter.id,
            "reporter_name": self.reporter.name,
            "reporter_email": self.reporter.email,
            "incident_type": d.incident_type,
            "title": d.title,
            "description": d.description,
            "location": {
                "address": d.address,
                "coordinates": d.coordinates.model_dump() if d.coordinates else None,
            },
            "photos": [],
            "status": "pending",
            "priority": priority,
            "verified": False,
            "accuracy": AccuracyRecord().model_dump(),
            "related_reports": [m.id for m in self.similar_reports],
            "is_duplicate": False,
            "reporter_reputation": reputation,
            "archived": False,
            "timestamp": now,
            "last_updated": now,
        }
        report_id = await self._store.create_document(INCIDENT_COLLECTION, doc)
        return report_id, {**doc, "id": report_id}

    def _reset_draft(self) -> None:
        self.draft = IncidentDraft()
        self.similar_reports = []
        self._acknowledged_ids = set()
