"""
incident.py — Pydantic schemas for citizen incident reports.

IncidentDraft           — the editable fields of a report being written
SubmitIncidentRequest   — draft + photos + confirmation flags (POST /api/v1/incidents)
IncidentReportOut       — stored report retrieved from MongoDB
ReportSummary           — slim candidate used by duplicate detection
DuplicateCheckResponse  — result of checking a draft against recent reports
EvidenceStatusOut       — background photo attachment state for one report

MongoDB document shape (collection `incident_reports`):

  {
    "reporter_id": "65f0c...", "reporter_name": "Ana", "reporter_email": "ana@example.com",
    "incident_type": "illegal-dumping",
    "title": "...", "description": "...",
    "location": { "address": "...", "coordinates": { "latitude": 14.5995, "longitude": 120.9842 } },
    "photos": ["/api/v1/blobs/65f0d..."],
    "status": "pending", "priority": "high",
    "verified": false,
    "accuracy": { "community_votes": 0, "upvotes": 0, "downvotes": 0, "flags": 0, "flag_reasons": [] },
    "related_reports": ["65ef1..."], "is_duplicate": false,
    "reporter_reputation": 100,
    "timestamp": ISODate(...), "last_updated": ISODate(...)
  }
"""

import base64
import binascii
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


IncidentType = Literal[
    "illegal-dumping",
    "pollution",
    "tree-cutting",
    "water-contamination",
    "air-pollution",
    "other",
]
IncidentStatus = Literal["pending", "investigating", "resolved", "rejected"]
PriorityBand = Literal["low", "medium", "high", "urgent"]
VoteType = Literal["up", "down", "flag"]


# ── Location ──────────────────────────────────────────────────────────────────

class Coordinates(BaseModel):
    """GPS fix in degrees."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class IncidentLocation(BaseModel):
    address: str = ""
    coordinates: Optional[Coordinates] = None


# ── Community trust signals ───────────────────────────────────────────────────

class AccuracyRecord(BaseModel):
    """Community votes on a report. Zeroed at creation."""
    community_votes: int = 0
    upvotes: int = 0
    downvotes: int = 0
    flags: int = 0
    flag_reasons: list[str] = Field(default_factory=list)


# ── Draft / submission ────────────────────────────────────────────────────────

class IncidentDraft(BaseModel):
    """Fields the citizen edits while writing a report."""
    incident_type: IncidentType = "illegal-dumping"
    title: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=5000)
    address: str = Field(default="", max_length=500)
    coordinates: Optional[Coordinates] = None


class PhotoUpload(BaseModel):
    """One photo as base64 bytes + MIME type."""
    filename: str = Field(..., min_length=1, max_length=200)
    content_b64: str = Field(..., min_length=4)
    mime: str = "image/jpeg"

    @field_validator("content_b64")
    @classmethod
    def _must_be_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("content_b64 is not valid base64")
        return value

    def decode(self) -> bytes:
        return base64.b64decode(self.content_b64)


class SubmitIncidentRequest(IncidentDraft):
    """Payload for POST /api/v1/incidents."""
    photos: list[PhotoUpload] = Field(default_factory=list, max_length=10)
    # Answers to the two advisory prompts; the API returns 409 until they are set.
    confirm_no_photos: bool = False
    acknowledge_duplicates: bool = False


# ── Stored report ─────────────────────────────────────────────────────────────

class IncidentReportOut(BaseModel):
    """A stored incident report."""
    id: str
    reporter_id: str
    reporter_name: str = "Anonymous"
    reporter_email: Optional[str] = None
    incident_type: IncidentType
    title: str
    description: str
    location: IncidentLocation
    photos: list[str] = Field(default_factory=list)
    status: IncidentStatus = "pending"
    priority: PriorityBand = "medium"
    government_response: Optional[str] = None
    resolved_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    verified: bool = False
    accuracy: AccuracyRecord = Field(default_factory=AccuracyRecord)
    related_reports: list[str] = Field(default_factory=list)
    is_duplicate: bool = False
    reporter_reputation: int = Field(default=100, ge=0, le=100)
    archived: bool = False
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    timestamp: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class IncidentListResponse(BaseModel):
    items: list[IncidentReportOut]
    total: int
    page: int
    limit: int
    pages: int


class IncidentStatsOut(BaseModel):
    """Counts for the government dashboard stat cards (archived excluded)."""
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
    by_type: dict[str, int]


# ── Duplicate detection ───────────────────────────────────────────────────────

class ReportSummary(BaseModel):
    """The fields duplicate detection needs from an existing report."""
    id: str
    reporter_id: str
    incident_type: str
    title: str = ""
    description: str = ""
    address: str = ""
    coordinates: Optional[Coordinates] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "ReportSummary":
        location = doc.get("location") or {}
        return cls(
            id=doc["id"],
            reporter_id=doc["reporter_id"],
            incident_type=doc["incident_type"],
            title=doc.get("title", ""),
            description=doc.get("description", ""),
            address=location.get("address", ""),
            coordinates=location.get("coordinates"),
            timestamp=doc.get("timestamp"),
        )


class SimilarReportOut(BaseModel):
    """Excerpt shown in the possible-duplicate warning."""
    id: str
    title: str
    date: Optional[datetime] = None
    excerpt: str
    address: str
    distance_km: Optional[float] = None


class DuplicateCheckResponse(BaseModel):
    """Response body for POST /api/v1/incidents/duplicate-check."""
    state: str
    similar_count: int
    similar_reports: list[SimilarReportOut]      # top 3 only
    related_report_ids: list[str]                # every match


# ── Submission result ─────────────────────────────────────────────────────────

class EvidenceStatusOut(BaseModel):
    report_id: str
    status: Literal["none", "pending", "attached", "failed"]
    photo_count: int = 0
    photo_urls: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class SubmitIncidentResponse(BaseModel):
    """Response body for POST /api/v1/incidents."""
    report_id: str
    priority: PriorityBand
    reporter_reputation: int
    related_reports: list[str]
    evidence: EvidenceStatusOut
    report: IncidentReportOut


# ── Review / votes ────────────────────────────────────────────────────────────

class ReviewUpdateRequest(BaseModel):
    """Government review of a report (PATCH /api/v1/incidents/{id}/review)."""
    status: IncidentStatus
    priority: PriorityBand
    government_response: Optional[str] = Field(default=None, max_length=5000)


class VoteRequest(BaseModel):
    vote: VoteType
    reason: Optional[str] = Field(default=None, max_length=500)
