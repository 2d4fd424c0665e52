"""
duplicate_detector.py — Near-duplicate incident detection.

A candidate report C is "similar" to the draft D when ALL of:

  1. C was written by someone else (self-reports never flag each other)
  2. C was created within the last 7 days
  3. C has the same incident type
  4. at least one of:
       a. both have GPS and are ≤ 0.5 km apart
       b. title Jaccard similarity      > 0.7
       c. description Jaccard similarity > 0.6

Candidates without a creation timestamp are treated as created at the epoch,
which always falls outside the window.

Everything here is pure: the candidate list comes from the caller (see
candidate_cache.py), and `now` is passed in so tests can pin the clock.

USAGE
─────
    matches = find_similar_reports(draft, reporter_id, candidates, now)
    warning = top_matches(matches, draft)   # first 3, as SimilarReportOut
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from greenguardian.models.incident import IncidentDraft, ReportSummary, SimilarReportOut
from greenguardian.services.geo import haversine_km
from greenguardian.services.similarity import jaccard_similarity

DUPLICATE_WINDOW       = timedelta(days=7)
MAX_DISTANCE_KM        = 0.5
TITLE_THRESHOLD        = 0.7
DESCRIPTION_THRESHOLD  = 0.6
WARNING_LIMIT          = 3
_EXCERPT_CHARS         = 120

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_utc(ts: Optional[datetime]) -> datetime:
    """Normalise a stored timestamp; Mongo hands back naive UTC datetimes."""
    if ts is None:
        return EPOCH
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def distance_between(draft: IncidentDraft, candidate: ReportSummary) -> Optional[float]:
    """Kilometres between the two reports, or None unless both have GPS."""
    if draft.coordinates is None or candidate.coordinates is None:
        return None
    return haversine_km(
        draft.coordinates.latitude,
        draft.coordinates.longitude,
        candidate.coordinates.latitude,
        candidate.coordinates.longitude,
    )


def is_similar(
    draft: IncidentDraft,
    reporter_id: str,
    candidate: ReportSummary,
    now: datetime,
) -> bool:
    if candidate.reporter_id == reporter_id:
        return False
    if as_utc(candidate.timestamp) < as_utc(now) - DUPLICATE_WINDOW:
        return False
    if candidate.incident_type != draft.incident_type:
        return False

    distance = distance_between(draft, candidate)
    if distance is not None and distance <= MAX_DISTANCE_KM:
        return True
    if jaccard_similarity(draft.title, candidate.title) > TITLE_THRESHOLD:
        return True
    return jaccard_similarity(draft.description, candidate.description) > DESCRIPTION_THRESHOLD


def find_similar_reports(
    draft: IncidentDraft,
    reporter_id: str,
    candidates: Iterable[ReportSummary],
    now: datetime,
) -> list[ReportSummary]:
    """All candidates matching the draft, in candidate order."""
    return [c for c in candidates if is_similar(draft, reporter_id, c, now)]


def _excerpt(text: str) -> str:
    if len(text) <= _EXCERPT_CHARS:
        return text
    return text[:_EXCERPT_CHARS].rstrip() + "..."


def summarize(match: ReportSummary, draft: IncidentDraft) -> SimilarReportOut:
    distance = distance_between(draft, match)
    return SimilarReportOut(
        id=match.id,
        title=match.title,
        date=match.timestamp,
        excerpt=_excerpt(match.description),
        address=match.address,
        distance_km=round(distance, 3) if distance is not None else None,
    )


def top_matches(
    matches: list[ReportSummary],
    draft: IncidentDraft,
    limit: int = WARNING_LIMIT,
) -> list[SimilarReportOut]:
    """The excerpts shown in the possible-duplicate warning."""
    return [summarize(m, draft) for m in matches[:limit]]
