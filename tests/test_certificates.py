"""
test_certificates.py — Certificate issuance, lookup and rendering.
"""

from datetime import datetime, timezone

import pytest

from greenguardian.models.incident import IncidentLocation, IncidentReportOut
from greenguardian.services.certificates import certificate_number
from greenguardian.services.document_renderer import (
    render_certificate_html,
    render_incident_report_html,
)


@pytest.fixture()
def participant(make_user):
    return make_user(display_name="Ana Santos")


def _challenge(store, **extra):
    return store.seed("challenges", {"title": "Pasig River Cleanup", "category": "cleanup", **extra})


def _participation(store, user_id, challenge_id, **extra):
    store.seed(
        "challenge_participants",
        {"user_id": user_id, "challenge_id": challenge_id, "completed_actions": 5, **extra},
    )


class TestIssue:

    async def test_completed_challenge_issues_certificate(self, api_client, memory_store, participant):
        user_id, headers = participant
        challenge_id = _challenge(memory_store)
        _participation(memory_store, user_id, challenge_id, is_completed=True)

        r = await api_client.post("/api/v1/certificates", json={"challenge_id": challenge_id}, headers=headers)
        assert r.status_code == 201
        data = r.json()
        assert data["user_name"] == "Ana Santos"
        assert data["challenge_title"] == "Pasig River Cleanup"
        assert data["certificate_number"].startswith("GG-")
        assert data["certificate_number"].endswith(user_id[:6].upper())

    async def test_second_request_conflicts(self, api_client, memory_store, participant):
        user_id, headers = participant
        challenge_id = _challenge(memory_store)
        _participation(memory_store, user_id, challenge_id, is_completed=True)

        await api_client.post("/api/v1/certificates", json={"challenge_id": challenge_id}, headers=headers)
        r = await api_client.post("/api/v1/certificates", json={"challenge_id": challenge_id}, headers=headers)
        assert r.status_code == 409

    async def test_incomplete_challenge_rejected(self, api_client, memory_store, participant):
        user_id, headers = participant
        challenge_id = _challenge(memory_store)
        _participation(memory_store, user_id, challenge_id, is_completed=False)

        r = await api_client.post("/api/v1/certificates", json={"challenge_id": challenge_id}, headers=headers)
        assert r.status_code == 403
        assert "must be completed" in r.json()["detail"]

    async def test_sponsored_challenge_needs_verification(self, api_client, memory_store, participant):
        user_id, headers = participant
        challenge_id = _challenge(memory_store, sponsor_id="s1", sponsor_name="EcoCorp")
        _participation(memory_store, user_id, challenge_id, is_completed=True, is_verified=False)

        r = await api_client.post("/api/v1/certificates", json={"challenge_id": challenge_id}, headers=headers)
        assert r.status_code == 403
        assert "EcoCorp" in r.json()["detail"]

    async def test_unknown_challenge_404(self, api_client, participant):
        _, headers = participant
        r = await api_client.post(
            "/api/v1/certificates", json={"challenge_id": "65f000000000000000000000"}, headers=headers
        )
        assert r.status_code == 404


class TestLookup:

    async def test_mine_verify_and_html(self, api_client, memory_store, participant):
        user_id, headers = participant
        challenge_id = _challenge(memory_store, sponsor_id="s1", sponsor_name="EcoCorp")
        _participation(memory_store, user_id, challenge_id, is_completed=True, is_verified=True)
        issued = (
            await api_client.post("/api/v1/certificates", json={"challenge_id": challenge_id}, headers=headers)
        ).json()
        number = issued["certificate_number"]

        mine = (await api_client.get("/api/v1/certificates/mine", headers=headers)).json()
        assert [c["certificate_number"] for c in mine] == [number]

        verified = await api_client.get(f"/api/v1/certificates/verify/{number}")
        assert verified.status_code == 200
        assert verified.json()["user_id"] == user_id

        page = await api_client.get(f"/api/v1/certificates/{number}/html")
        assert page.status_code == 200
        assert "CERTIFICATE OF PARTICIPATION" in page.text
        assert "EcoCorp" in page.text
        assert f"Certificate Number: {number}" in page.text

    async def test_verify_unknown_number_404(self, api_client):
        r = await api_client.get("/api/v1/certificates/verify/GG-0-NOPE")
        assert r.status_code == 404


class TestRendering:

    def test_certificate_number_format(self):
        issued = datetime.fromtimestamp(1718000000, tz=timezone.utc)
        assert certificate_number("65f0c1abcdef", issued) == "GG-1718000000000-65F0C1"

    def test_certificate_escapes_names(self):
        html = render_certificate_html(
            {
                "user_name": "<b>Ana</b>",
                "challenge_title": "Clean & Green",
                "certificate_number": "GG-1-ABC",
                "issue_date": datetime(2026, 1, 5, tzinfo=timezone.utc),
            }
        )
        assert "&lt;b&gt;Ana&lt;/b&gt;" in html
        assert "Clean &amp; Green" in html
        assert "January 05, 2026" in html
        assert "/verify/GG-1-ABC" in html

    def test_incident_report_html(self):
        report = IncidentReportOut(
            id="r1",
            reporter_id="u1",
            reporter_name="Ana",
            incident_type="water-contamination",
            title="Oil sheen on creek",
            description="Rainbow film downstream of the depot",
            location=IncidentLocation(address="Marikina", coordinates={"latitude": 14.65, "longitude": 121.1}),
            government_response="Sampling scheduled",
        )
        html = render_incident_report_html(report)
        assert "Oil sheen on creek" in html
        assert "14.65000, 121.10000" in html
        assert "Sampling scheduled" in html

    def test_incident_report_escapes_stored_text(self):
        report = IncidentReportOut(
            id="r2",
            reporter_id="u1",
            reporter_name="<img src=x onerror=alert(1)>",
            incident_type="illegal-dumping",
            title="<script>alert('x')</script>",
            description="Bags & bottles",
            location=IncidentLocation(address="Tondo", coordinates=None),
            photos=['/api/v1/blobs/abc" onload="evil()'],
        )
        html = render_incident_report_html(report)
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "&lt;img src=x onerror=alert(1)&gt;" in html
        assert "Bags &amp; bottles" in html
        assert 'onload="evil()"' not in html
