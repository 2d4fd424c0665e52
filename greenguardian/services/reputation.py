"""
reputation.py — Reporter credibility score.

Recomputed from scratch from a user's full report history every time it is
needed; nothing stores a running counter. Each new report keeps a snapshot
of the score at submission time (reporter_reputation), and that snapshot is
never reconciled with later recomputations.

USAGE
─────
    from greenguardian.services.reputation import compute_reputation

    history = await store.find_documents("incident_reports", {"reporter_id": uid})
    compute_reputation(history)   # → 0..100, 100 for a brand-new reporter
"""

from collections.abc import Iterable, Mapping

BASE_REPUTATION = 100

_VERIFIED_BONUS      = 10
_REJECTED_PENALTY    = 20
_DOWNVOTED_PENALTY   = 5     # downvotes > upvotes
_FLAGGED_PENALTY     = 15    # flags > _FLAG_THRESHOLD
_FLAG_THRESHOLD      = 3


def report_adjustment(report: Mapping) -> int:
    """Score delta contributed by a single historical report."""
    accuracy = report.get("accuracy") or {}
    delta = 0

    if report.get("verified"):
        delta += _VERIFIED_BONUS
    if report.get("status") == "rejected":
        delta -= _REJECTED_PENALTY
    if (accuracy.get("downvotes") or 0) > (accuracy.get("upvotes") or 0):
        delta -= _DOWNVOTED_PENALTY
    if (accuracy.get("flags") or 0) > _FLAG_THRESHOLD:
        delta -= _FLAGGED_PENALTY

    return delta


def compute_reputation(history: Iterable[Mapping]) -> int:
    """
    Integer score in [0, 100] over a user's own reports.

    Adjustments are summed over the whole history first and the total is
    clamped once at the end, so a long verified streak can offset a later
    rejection.
    """
    score = BASE_REPUTATION + sum(report_adjustment(r) for r in history)
    return max(0, min(100, score))
