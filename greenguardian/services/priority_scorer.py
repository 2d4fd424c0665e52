"""
priority_scorer.py — Triage band for a new incident report.

Cheap, deterministic scoring so that severe, well-evidenced reports from
credible reporters reach the top of the government review queue. The
weights and band thresholds are policy constants.

USAGE
─────
    from greenguardian.services.priority_scorer import compute_priority

    compute_priority("water-contamination", photo_count=3,
                     has_coordinates=True, reputation=95)
    # → "urgent"   (4 type + 2 photo + 1 three-photos + 1 gps + 1 credibility = 9)

TESTING
────────
    pytest tests/test_reputation_priority.py -v
"""

from __future__ import annotations

# ── Weights ───────────────────────────────────────────────────────────────────

_TYPE_WEIGHT = {
    "water-contamination": 4,
    "illegal-dumping":     3,
    "air-pollution":       3,
    "tree-cutting":        2,
}
_PHOTO_BONUS          = 2   # at least one photo
_MANY_PHOTOS_BONUS    = 1   # on top of _PHOTO_BONUS
_MANY_PHOTOS          = 3
_COORDINATES_BONUS    = 1
_TRUSTED_BONUS        = 1   # reputation >= _TRUSTED_REPUTATION
_TRUSTED_REPUTATION   = 90
_UNTRUSTED_PENALTY    = 2   # reputation <  _UNTRUSTED_REPUTATION
_UNTRUSTED_REPUTATION = 50

# ── Band thresholds ───────────────────────────────────────────────────────────

_BANDS = [
    (7, "urgent"),
    (5, "high"),
    (3, "medium"),
]


def type_weight(incident_type: str) -> int:
    """Severity weight of an incident type; unknown / 'other' types weigh 0."""
    return _TYPE_WEIGHT.get(incident_type, 0)


def compute_priority_score(
    incident_type: str,
    photo_count: int,
    has_coordinates: bool,
    reputation: int,
) -> int:
    score = type_weight(incident_type)

    # Evidence
    if photo_count > 0:
        score += _PHOTO_BONUS
        if photo_count >= _MANY_PHOTOS:
            score += _MANY_PHOTOS_BONUS
    if has_coordinates:
        score += _COORDINATES_BONUS

    # Credibility
    if reputation >= _TRUSTED_REPUTATION:
        score += _TRUSTED_BONUS
    elif reputation < _UNTRUSTED_REPUTATION:
        score -= _UNTRUSTED_PENALTY

    return score


def compute_priority_band(score: int) -> str:
    """
    Map a priority score → band.
    Returns one of: 'urgent', 'high', 'medium', 'low'.
    """
    for threshold, band in _BANDS:
        if score >= threshold:
            return band
    return "low"


def compute_priority(
    incident_type: str,
    photo_count: int,
    has_coordinates: bool,
    reputation: int,
) -> str:
    """Priority band for a draft about to be submitted."""
    return compute_priority_band(
        compute_priority_score(incident_type, photo_count, has_coordinates, reputation)
    )
