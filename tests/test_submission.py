"""
test_submission.py — Submission gating, two-phase persistence and evidence.

Drives IncidentSubmission directly against InMemoryStore (see conftest.py),
with the clock pinned so the 7-day window is deterministic.

Run:
    pytest tests/test_submission.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from greenguardian.models.incident import Coordinates, IncidentDraft
from greenguardian.models.user import ReporterProfile
from greenguardian.services.evidence import AttachmentStatus, EvidenceAttacher, EvidenceBlob
from greenguardian.services.submission import (
    NO_PHOTOS,
    POSSIBLE_DUPLICATE,
    ConfirmationRequired,
    IncidentSubmission,
    IncidentValidationError,
    ReportPersistenceError,
    SubmissionState,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

MANILA_DRAFT = dict(
    incident_type="illegal-dumping",
    title="Trash dumped near river",
    description="Large pile of plastic waste near the river bank",
    address="Pasig River, Manila",
    coordinates=Coordinates(latitude=14.5995, longitude=120.9842),
)

PHOTO = EvidenceBlob(filename="river.jpg", data=b"\xff\xd8jpeg", content_type="image/jpeg")


def _existing_report(reporter_id="someone-else", days_ago=2, **overrides) -> dict:
    doc = {
        "reporter_id": reporter_id,
        "reporter_name": "Ben",
        "incident_type": "illegal-dumping",
        "title": "Garbage by the riverbank",
        "description": "Bags of trash left on the bank",
        "location": {"address": "Pasig River", "coordinates": {"latitude": 14.6000, "longitude": 120.9850}},
        "photos": [],
        "status": "pending",
        "verified": False,
        "accuracy": {"community_votes": 0, "upvotes": 0, "downvotes": 0, "flags": 0, "flag_reasons": []},
        "timestamp": NOW - timedelta(days=days_ago),
    }
    doc.update(overrides)
    return doc


@pytest.fixture()
def reporter():
    return ReporterProfile(id="reporter-1", email="ana@example.com", display_name="Ana")


@pytest.fixture()
def attacher(memory_store):
    return EvidenceAttacher(memory_store, clock=lambda: NOW)


@pytest.fixture()
def make_session(memory_store, candidate_cache, attacher, reporter):
    def _make(**draft):
        return IncidentSubmission(
            memory_store,
            candidate_cache,
            attacher,
            reporter,
            draft=IncidentDraft(**{**MANILA_DRAFT, **draft}),
            debounce_seconds=0.01,
            clock=lambda: NOW,
        )

    return _make


def _reports(store):
    return store.docs("incident_reports")


# ── Gating ───────────────────────────────────────────────────────────────────

class TestGating:

    async def test_missing_fields_rejected(self, make_session, memory_store):
        session = make_session(title="   ")
        with pytest.raises(IncidentValidationError):
            await session.submit([PHOTO])
        assert _reports(memory_store) == []

    async def test_missing_gps_rejected(self, make_session, memory_store):
        session = make_session(coordinates=None)
        with pytest.raises(IncidentValidationError, match="GPS"):
            await session.submit([PHOTO])
        assert _reports(memory_store) == []

    async def test_no_photos_needs_confirmation(self, make_session, memory_store):
        with pytest.raises(ConfirmationRequired) as exc:
            await make_session().submit([])
        assert exc.value.kind == NO_PHOTOS
        assert _reports(memory_store) == []

    async def test_manila_scenario_needs_both_confirmations(self, make_session, memory_store):
        existing_id = memory_store.seed("incident_reports", _existing_report())
        session = make_session()

        with pytest.raises(ConfirmationRequired) as first:
            await session.submit([])
        assert first.value.kind == NO_PHOTOS
        assert [m.id for m in session.similar_reports] == [existing_id]

        with pytest.raises(ConfirmationRequired) as second:
            await session.submit([], confirm_no_photos=True)
        assert second.value.kind == POSSIBLE_DUPLICATE
        assert second.value.similar_reports[0].id == existing_id
        assert len(_reports(memory_store)) == 1

        result = await session.submit([], confirm_no_photos=True, acknowledge_duplicates=True)
        assert result.related_reports == [existing_id]
        assert len(_reports(memory_store)) == 2
        assert session.state == SubmissionState.SUBMITTED

    async def test_acknowledged_warning_survives_resubmit(self, make_session, memory_store):
        memory_store.seed("incident_reports", _existing_report())
        session = make_session()
        await session.check_duplicates()
        assert session.state == SubmissionState.WARNED
        session.acknowledge_duplicates()
        assert session.state == SubmissionState.DRAFTING

        result = await session.submit([PHOTO])
        assert len(result.related_reports) == 1

    async def test_new_match_after_acknowledge_warns_again(self, make_session, memory_store):
        memory_store.seed("incident_reports", _existing_report())
        session = make_session()
        await session.check_duplicates()
        session.acknowledge_duplicates()

        memory_store.seed("incident_reports", _existing_report(reporter_id="third-user"))
        with pytest.raises(ConfirmationRequired) as exc:
            await session.submit([PHOTO])
        assert exc.value.kind == POSSIBLE_DUPLICATE

    async def test_own_and_stale_reports_do_not_warn(self, make_session, memory_store, reporter):
        memory_store.seed("incident_reports", _existing_report(reporter_id=reporter.id))
        memory_store.seed("incident_reports", _existing_report(days_ago=8))
        result = await make_session().submit([PHOTO])
        assert result.related_reports == []


# ── Debounced check ──────────────────────────────────────────────────────────

class TestDraftEditing:

    async def test_edits_trigger_single_check(self, memory_store, candidate_cache, attacher, reporter):
        memory_store.seed("incident_reports", _existing_report())
        checks = []
        session = IncidentSubmission(
            memory_store, candidate_cache, attacher, reporter,
            debounce_seconds=0.01, clock=lambda: NOW,
            on_check=lambda s: checks.append(len(s.similar_reports)),
        )
        session.update_draft(title=MANILA_DRAFT["title"])
        session.update_draft(description=MANILA_DRAFT["description"])
        assert not session.check_pending  # no GPS yet
        session.update_draft(coordinates={"latitude": 14.5995, "longitude": 120.9842})
        assert session.check_pending

        await session.wait_for_check()
        assert checks == [1]
        assert session.state == SubmissionState.WARNED

    async def test_clearing_required_field_cancels_pending_check(self, make_session):
        session = make_session()
        session.update_draft(title="Trash dumped near the river")
        assert session.check_pending
        session.update_draft(title="")
        assert not session.check_pending

    async def test_close_cancels_pending_check(self, make_session):
        session = make_session()
        session.update_draft(title="changed")
        session.close()
        assert not session.check_pending


# ── Persistence ──────────────────────────────────────────────────────────────

class TestPersistence:

    async def test_skeleton_document_fields(self, make_session, memory_store, reporter):
        result = await make_session().submit([], confirm_no_photos=True)
        doc = memory_store.docs("incident_reports")[0]

        assert doc["reporter_id"] == reporter.id
        assert doc["reporter_name"] == "Ana"
        assert doc["photos"] == []
        assert doc["status"] == "pending"
        assert doc["verified"] is False
        assert doc["is_duplicate"] is False
        assert doc["accuracy"]["community_votes"] == 0
        assert doc["reporter_reputation"] == 100
        assert doc["timestamp"] == NOW
        assert doc["location"]["coordinates"] == {"latitude": 14.5995, "longitude": 120.9842}
        # illegal-dumping 3 + gps 1 + trusted 1 = 5
        assert result.priority == "high"
        assert result.evidence.status == AttachmentStatus.NONE

    async def test_priority_uses_history_reputation(self, make_session, memory_store, reporter):
        for _ in range(3):
            memory_store.seed(
                "incident_reports",
                _existing_report(reporter_id=reporter.id, days_ago=30, status="rejected"),
            )
        result = await make_session(incident_type="tree-cutting").submit([], confirm_no_photos=True)
        assert result.reputation == 40
        assert result.priority == "low"

    async def test_water_contamination_with_three_photos_is_urgent(self, make_session, memory_store, reporter):
        memory_store.seed(
            "incident_reports",
            _existing_report(reporter_id=reporter.id, days_ago=30, verified=True, status="resolved"),
        )
        memory_store.seed(
            "incident_reports",
            _existing_report(
                reporter_id=reporter.id, days_ago=40, status="pending",
                accuracy={"upvotes": 0, "downvotes": 1, "flags": 0},
            ),
        )
        result = await make_session(incident_type="water-contamination").submit([PHOTO] * 3)
        assert result.reputation == 100
        assert result.priority == "urgent"

    async def test_store_failure_keeps_draft(self, make_session, memory_store):
        memory_store.fail_creates = True
        session = make_session()
        with pytest.raises(ReportPersistenceError, match="Failed to submit report"):
            await session.submit([PHOTO])
        assert session.state == SubmissionState.FAILED
        assert session.draft.title == MANILA_DRAFT["title"]

    async def test_draft_reset_after_success(self, make_session):
        session = make_session()
        await session.submit([PHOTO])
        assert session.draft == IncidentDraft()
        assert session.similar_reports == []


# ── Evidence attachment ──────────────────────────────────────────────────────

class TestEvidence:

    async def test_photos_patched_in_background(self, make_session, memory_store, attacher, reporter):
        result = await make_session().submit([PHOTO, PHOTO])
        assert result.document["photos"] == []

        attachment = await attacher.wait(result.report_id)
        assert attachment.status == AttachmentStatus.ATTACHED
        assert len(attachment.photo_urls) == 2

        doc = await memory_store.get_document("incident_reports", result.report_id)
        assert doc["photos"] == attachment.photo_urls
        assert all(p.startswith(f"incident-reports/{reporter.id}/") for p in memory_store.uploaded_paths)

    async def test_upload_failure_leaves_report_without_photos(self, make_session, memory_store, attacher):
        memory_store.fail_uploads = True
        result = await make_session().submit([PHOTO])

        attachment = await attacher.wait(result.report_id)
        assert attachment.status == AttachmentStatus.FAILED
        assert "blob store unavailable" in attachment.error
        assert attachment.finished_at == NOW

        doc = await memory_store.get_document("incident_reports", result.report_id)
        assert doc["photos"] == []

    async def test_missing_report_marks_failed(self, memory_store, attacher):
        attachment = attacher.attach_evidence("65f000000000000000000000", "u1", [PHOTO])
        assert attachment.status == AttachmentStatus.PENDING
        await attacher.drain()
        assert attachment.status == AttachmentStatus.FAILED
        assert attacher.status("65f000000000000000000000") is attachment

    async def test_finished_records_expire_after_retention(self, memory_store):
        clock = [NOW]
        attacher = EvidenceAttacher(memory_store, clock=lambda: clock[0], retention=timedelta(minutes=30))
        report_id = memory_store.seed("incident_reports", _existing_report())

        attacher.attach_evidence(report_id, "u1", [PHOTO])
        await attacher.wait(report_id)
        attacher.attach_evidence("no-photos", "u1", [])

        clock[0] = NOW + timedelta(minutes=29)
        assert attacher.status(report_id).status == AttachmentStatus.ATTACHED

        clock[0] = NOW + timedelta(minutes=31)
        assert attacher.prune() == 2
        assert attacher.status(report_id) is None
        assert attacher.status("no-photos") is None

    async def test_pending_records_are_kept(self, memory_store):
        clock = [NOW]
        attacher = EvidenceAttacher(memory_store, clock=lambda: clock[0], retention=timedelta(seconds=0))
        report_id = memory_store.seed("incident_reports", _existing_report())

        attachment = attacher.attach_evidence(report_id, "u1", [PHOTO])
        clock[0] = NOW + timedelta(days=1)
        assert attacher.status(report_id) is attachment
        await attacher.drain()
