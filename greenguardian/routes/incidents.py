"""
incidents.py — Citizen incident reports.

Routes:
  POST  /api/v1/incidents/duplicate-check   — similar recent reports for a draft
  POST  /api/v1/incidents                   — submit a report (10/minute per IP)
  WS    /api/v1/incidents/draft?token=...   — live drafting session
  GET   /api/v1/incidents                   — list (paginated, filterable)
  GET   /api/v1/incidents/mine              — caller's own reports, newest first
  GET   /api/v1/incidents/stats             — dashboard counts (archived excluded)
  GET   /api/v1/incidents/{id}              — single report
  GET   /api/v1/incidents/{id}/evidence     — background photo attachment state
  GET   /api/v1/incidents/{id}/download     — export as JSON or printable HTML
  PATCH /api/v1/incidents/{id}/review       — government review (status, priority, response)
  POST  /api/v1/incidents/{id}/archive      — hide from the default dashboard list
  POST  /api/v1/incidents/{id}/unarchive
  POST  /api/v1/incidents/{id}/votes        — community accuracy vote (up / down / flag)

SUBMISSION RESPONSES
────────────────────
  201  report created; photos keep uploading in the background
  409  {"detail": {"confirmation": "no_photos" | "possible_duplicate",
                   "message": "...", "similar_reports": [...]}}
       resubmit with confirm_no_photos / acknowledge_duplicates set
  422  missing title / description / address / GPS
  503  report could not be written; nothing was created

DRAFT WEBSOCKET
───────────────
Client → server:
  {"type": "edit", "draft": {"title": "...", "coordinates": {...}}}
  {"type": "acknowledge"}
  {"type": "submit", "photos": [...], "confirm_no_photos": false}

Server → client:
  {"type": "duplicate_check", "state": "warned", "similar_count": 2, "similar_reports": [...]}
  {"type": "state", "state": "drafting"}
  {"type": "confirmation_required", "confirmation": "...", "message": "...", "similar_reports": [...]}
  {"type": "submitted", "report_id": "...", "priority": "high", ...}
  {"type": "error", "detail": "..."}

Edits re-arm a 1 s debounced duplicate check; its result is pushed as a
duplicate_check message. A bad token closes the socket with code 4401.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from math import ceil
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import TypeAdapter, ValidationError

from greenguardian.core.config import settings
from greenguardian.core.database import get_store
from greenguardian.core.rate_limit import limiter
from greenguardian.core.store import to_object_id
from greenguardian.models.incident import (
    AccuracyRecord,
    DuplicateCheckResponse,
    EvidenceStatusOut,
    IncidentDraft,
    IncidentListResponse,
    IncidentReportOut,
    IncidentStatsOut,
    PhotoUpload,
    ReviewUpdateRequest,
    SubmitIncidentRequest,
    SubmitIncidentResponse,
    VoteRequest,
)
from greenguardian.routes.auth import CurrentReporter, CurrentReviewer, load_reporter
from greenguardian.services.candidate_cache import get_candidate_cache
from greenguardian.services.document_renderer import render_incident_report_html
from greenguardian.services.evidence import (
    INCIDENT_COLLECTION,
    AttachmentStatus,
    EvidenceAttacher,
    EvidenceAttachment,
    EvidenceBlob,
)
from greenguardian.services.submission import (
    ConfirmationRequired,
    IncidentSubmission,
    IncidentValidationError,
    ReportPersistenceError,
    SubmissionResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/incidents", tags=["incidents"])

_photo_list = TypeAdapter(list[PhotoUpload])


# ── Dependencies ──────────────────────────────────────────────────────────────

_attacher: Optional[EvidenceAttacher] = None


def get_evidence_attacher(store=Depends(get_store)) -> Optional[EvidenceAttacher]:
    """Process-wide attacher so evidence state outlives the submitting request."""
    global _attacher
    if store is None:
        return None
    if _attacher is None or _attacher.store is not store:
        _attacher = EvidenceAttacher(
            store, retention=timedelta(minutes=settings.evidence_status_retention_minutes)
        )
    return _attacher


async def drain_evidence_uploads() -> None:
    """Called from the app lifespan on shutdown."""
    if _attacher is not None:
        await _attacher.drain()


# ── Helpers ───────────────────────────────────────────────────────────────────

def doc_to_report(doc: dict) -> IncidentReportOut:
    return IncidentReportOut.model_validate(doc)


def _to_blobs(photos: list[PhotoUpload]) -> list[EvidenceBlob]:
    return [EvidenceBlob(filename=p.filename, data=p.decode(), content_type=p.mime) for p in photos]


def _evidence_out(attachment: EvidenceAttachment) -> EvidenceStatusOut:
    return EvidenceStatusOut(
        report_id=attachment.report_id,
        status=attachment.status.value,
        photo_count=attachment.photo_count,
        photo_urls=attachment.photo_urls,
        error=attachment.error,
    )


def _submit_response(result: SubmissionResult) -> SubmitIncidentResponse:
    return SubmitIncidentResponse(
        report_id=result.report_id,
        priority=result.priority,
        reporter_reputation=result.reputation,
        related_reports=result.related_reports,
        evidence=_evidence_out(result.evidence),
        report=doc_to_report(result.document),
    )


def _confirmation_detail(exc: ConfirmationRequired) -> dict:
    return {
        "confirmation": exc.kind,
        "message": exc.message,
        "similar_reports": [s.model_dump(mode="json") for s in exc.similar_reports],
    }


def _check_payload(session: IncidentSubmission) -> dict:
    return DuplicateCheckResponse(
        state=session.state.value,
        similar_count=len(session.similar_reports),
        similar_reports=session.warning(),
        related_report_ids=[m.id for m in session.similar_reports],
    ).model_dump(mode="json")


def _require_store(store):
    if store is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return store


async def _load_report(store, report_id: str) -> dict:
    if to_object_id(report_id) is None:
        raise HTTPException(status_code=422, detail="Invalid report ID format")
    doc = await store.get_document(INCIDENT_COLLECTION, report_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return doc


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


# ── Drafting / submission ─────────────────────────────────────────────────────

@router.post("/duplicate-check", response_model=DuplicateCheckResponse)
async def duplicate_check(
    payload: IncidentDraft,
    current_user: CurrentReporter,
    store=Depends(get_store),
    candidates=Depends(get_candidate_cache),
    attacher=Depends(get_evidence_attacher),
):
    """
    Compare a draft against recent reports by other users.

    Drafts without title, description and GPS are not checked yet and
    come back in the `drafting` state with no matches.
    """
    session = IncidentSubmission(store, candidates, attacher, current_user, draft=payload)
    if session.ready_for_check:
        await session.check_duplicates()
    return _check_payload(session)


@router.post("", response_model=SubmitIncidentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.submit_rate_limit)
async def submit_incident(
    request: Request,
    payload: SubmitIncidentRequest,
    current_user: CurrentReporter,
    store=Depends(get_store),
    candidates=Depends(get_candidate_cache),
    attacher=Depends(get_evidence_attacher),
):
    """Submit a report. Photos are attached in the background after the 201."""
    _require_store(store)

    draft = IncidentDraft.model_validate(payload.model_dump(include=set(IncidentDraft.model_fields)))
    session = IncidentSubmission(store, candidates, attacher, current_user, draft=draft)
    try:
        result = await session.submit(
            _to_blobs(payload.photos),
            confirm_no_photos=payload.confirm_no_photos,
            acknowledge_duplicates=payload.acknowledge_duplicates,
        )
    except IncidentValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ConfirmationRequired as exc:
        raise HTTPException(status_code=409, detail=_confirmation_detail(exc))
    except ReportPersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    return _submit_response(result)


@router.websocket("/draft")
async def draft_session(
    websocket: WebSocket,
    token: str = Query(default=""),
    store=Depends(get_store),
    candidates=Depends(get_candidate_cache),
    attacher=Depends(get_evidence_attacher),
):
    await websocket.accept()

    reporter = await load_reporter(store, token) if store is not None else None
    if reporter is None:
        await websocket.close(code=4401, reason="Invalid or expired token")
        return

    async def push_check(session: IncidentSubmission) -> None:
        await websocket.send_json({"type": "duplicate_check", **_check_payload(session)})

    session = IncidentSubmission(store, candidates, attacher, reporter, on_check=push_check)
    logger.debug("Draft session opened for %s", reporter.id)

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "detail": "Messages must be JSON objects"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "detail": "Messages must be JSON objects"})
                continue

            kind = message.get("type")
            if kind == "edit":
                changes = message.get("draft") or {}
                if not isinstance(changes, dict):
                    await websocket.send_json({"type": "error", "detail": "'draft' must be a JSON object"})
                    continue
                try:
                    session.update_draft(**changes)
                except ValidationError as exc:
                    await websocket.send_json(
                        {"type": "error", "detail": exc.errors(include_url=False, include_context=False)}
                    )
                    continue
                await websocket.send_json({"type": "state", "state": session.state.value})

            elif kind == "acknowledge":
                session.acknowledge_duplicates()
                await websocket.send_json({"type": "state", "state": session.state.value})

            elif kind == "submit":
                try:
                    photos = _photo_list.validate_python(message.get("photos") or [])
                    result = await session.submit(
                        _to_blobs(photos),
                        confirm_no_photos=bool(message.get("confirm_no_photos")),
                        acknowledge_duplicates=bool(message.get("acknowledge_duplicates")),
                    )
                except ValidationError as exc:
                    await websocket.send_json(
                        {"type": "error", "detail": exc.errors(include_url=False, include_context=False)}
                    )
                except IncidentValidationError as exc:
                    await websocket.send_json({"type": "error", "detail": str(exc)})
                except ConfirmationRequired as exc:
                    await websocket.send_json({"type": "confirmation_required", **_confirmation_detail(exc)})
                except ReportPersistenceError as exc:
                    await websocket.send_json({"type": "error", "detail": str(exc)})
                else:
                    await websocket.send_json(
                        {"type": "submitted", **_submit_response(result).model_dump(mode="json")}
                    )

            else:
                await websocket.send_json({"type": "error", "detail": f"Unknown message type '{kind}'"})
    except WebSocketDisconnect:
        logger.debug("Draft session closed for %s", reporter.id)
    finally:
        session.close()


# ── Listing ───────────────────────────────────────────────────────────────────

@router.get("", response_model=IncidentListResponse)
async def list_incidents(
    current_user: CurrentReporter,
    page:          int  = Query(default=1, ge=1),
    limit:         int  = Query(default=20, ge=1, le=100),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    priority:      Optional[str] = Query(default=None),
    incident_type: Optional[str] = Query(default=None),
    archived:      bool = Query(default=False),
    store=Depends(get_store),
):
    """Paginated reports, newest first. Archived reports only when archived=true."""
    if store is None:
        return IncidentListResponse(items=[], total=0, page=page, limit=limit, pages=0)

    query: dict = {"archived": True} if archived else {"archived": {"$ne": True}}
    if status_filter and status_filter != "all":
        query["status"] = status_filter
    if priority and priority != "all":
        query["priority"] = priority
    if incident_type and incident_type != "all":
        query["incident_type"] = incident_type

    skip = (page - 1) * limit
    total = await store.count_documents(INCIDENT_COLLECTION, query)
    docs = await store.find_documents(
        INCIDENT_COLLECTION, query, sort=[("timestamp", -1)], skip=skip, limit=limit
    )

    items = []
    for doc in docs:
        try:
            items.append(doc_to_report(doc))
        except ValidationError as exc:
            logger.warning("Skipping malformed report doc %s: %s", doc.get("id"), exc)

    pages = ceil(total / limit) if total else 0
    return IncidentListResponse(items=items, total=total, page=page, limit=limit, pages=pages)


@router.get("/mine", response_model=list[IncidentReportOut])
async def my_incidents(current_user: CurrentReporter, store=Depends(get_store)):
    _require_store(store)
    docs = await store.find_documents(
        INCIDENT_COLLECTION, {"reporter_id": current_user.id}, sort=[("timestamp", -1)]
    )
    return [doc_to_report(d) for d in docs]


@router.get("/stats", response_model=IncidentStatsOut)
async def incident_stats(current_user: CurrentReporter, store=Depends(get_store)):
    """Counts by status, priority and type for the dashboard stat cards."""
    _require_store(store)
    docs = await store.find_documents(INCIDENT_COLLECTION, {"archived": {"$ne": True}})
    return IncidentStatsOut(
        total=len(docs),
        by_status=dict(Counter(d.get("status", "pending") for d in docs)),
        by_priority=dict(Counter(d.get("priority", "medium") for d in docs)),
        by_type=dict(Counter(d.get("incident_type", "other") for d in docs)),
    )


# ── Single report ─────────────────────────────────────────────────────────────

@router.get("/{report_id}", response_model=IncidentReportOut)
async def get_incident(report_id: str, current_user: CurrentReporter, store=Depends(get_store)):
    _require_store(store)
    return doc_to_report(await _load_report(store, report_id))


@router.get("/{report_id}/evidence", response_model=EvidenceStatusOut)
async def evidence_status(
    report_id: str,
    current_user: CurrentReporter,
    store=Depends(get_store),
    attacher=Depends(get_evidence_attacher),
):
    """
    Photo attachment progress for a report.

    Reports submitted before this process started have no in-memory record;
    their state is read off the stored photo list instead.
    """
    _require_store(store)
    attachment = attacher.status(report_id) if attacher is not None else None
    if attachment is not None:
        return _evidence_out(attachment)

    doc = await _load_report(store, report_id)
    photos = doc.get("photos") or []
    return EvidenceStatusOut(
        report_id=report_id,
        status=AttachmentStatus.ATTACHED.value if photos else AttachmentStatus.NONE.value,
        photo_count=len(photos),
        photo_urls=photos,
    )


@router.get("/{report_id}/download")
async def download_incident(
    report_id: str,
    current_user: CurrentReporter,
    fmt: str = Query(default="json", alias="format"),
    store=Depends(get_store),
):
    """
    Export a report.

    Supported formats: json, html (print-ready)
    """
    _require_store(store)
    report = doc_to_report(await _load_report(store, report_id))

    if fmt.lower() == "json":
        return JSONResponse(
            content=report.model_dump(mode="json"),
            headers={"Content-Disposition": f'attachment; filename="incident-{report_id}.json"'},
        )
    if fmt.lower() == "html":
        return HTMLResponse(render_incident_report_html(report))

    raise HTTPException(status_code=400, detail=f"Unsupported format '{fmt}'. Use 'json' or 'html'.")


# ── Review / archive ──────────────────────────────────────────────────────────

@router.patch("/{report_id}/review", response_model=IncidentReportOut)
async def review_incident(
    report_id: str,
    payload: ReviewUpdateRequest,
    reviewer: CurrentReviewer,
    store=Depends(get_store),
):
    _require_store(store)
    await _load_report(store, report_id)

    now = _now()
    update = {
        "status": payload.status,
        "priority": payload.priority,
        "government_response": payload.government_response,
        "assigned_to": reviewer.email,
        "last_updated": now,
    }
    if payload.status == "resolved":
        update["resolved_at"] = now

    await store.update_document(INCIDENT_COLLECTION, report_id, update)
    logger.info("Report %s reviewed by %s: %s/%s", report_id, reviewer.id, payload.status, payload.priority)
    return doc_to_report(await _load_report(store, report_id))


async def _set_archived(store, report_id: str, reviewer, archived: bool) -> IncidentReportOut:
    _require_store(store)
    await _load_report(store, report_id)
    now = _now()
    await store.update_document(
        INCIDENT_COLLECTION,
        report_id,
        {
            "archived": archived,
            "archived_at": now if archived else None,
            "archived_by": reviewer.id if archived else None,
            "last_updated": now,
        },
    )
    return doc_to_report(await _load_report(store, report_id))


@router.post("/{report_id}/archive", response_model=IncidentReportOut)
async def archive_incident(report_id: str, reviewer: CurrentReviewer, store=Depends(get_store)):
    return await _set_archived(store, report_id, reviewer, True)


@router.post("/{report_id}/unarchive", response_model=IncidentReportOut)
async def unarchive_incident(report_id: str, reviewer: CurrentReviewer, store=Depends(get_store)):
    return await _set_archived(store, report_id, reviewer, False)


# ── Community votes ───────────────────────────────────────────────────────────

@router.post("/{report_id}/votes", response_model=IncidentReportOut)
async def vote_on_incident(
    report_id: str,
    payload: VoteRequest,
    current_user: CurrentReporter,
    store=Depends(get_store),
):
    """Up/down votes count towards community_votes; flags collect reasons."""
    _require_store(store)
    doc = await _load_report(store, report_id)
    if doc.get("reporter_id") == current_user.id:
        raise HTTPException(status_code=403, detail="You cannot vote on your own report")

    accuracy = AccuracyRecord.model_validate(doc.get("accuracy") or {})
    if payload.vote == "up":
        accuracy.upvotes += 1
        accuracy.community_votes += 1
    elif payload.vote == "down":
        accuracy.downvotes += 1
        accuracy.community_votes += 1
    else:
        accuracy.flags += 1
        if payload.reason:
            accuracy.flag_reasons.append(payload.reason)

    await store.update_document(
        INCIDENT_COLLECTION,
        report_id,
        {"accuracy": accuracy.model_dump(), "last_updated": _now()},
    )
    return doc_to_report(await _load_report(store, report_id))
