"""
users.py — Per-user derived data.

Routes:
  GET /api/v1/users/me/reputation  — current credibility score

Reputation is recomputed from the caller's full report history on every
request; the value stored on each report is only a snapshot taken at
submission time.
"""

from fastapi import APIRouter, Depends, HTTPException

from greenguardian.core.database import get_store
from greenguardian.models.user import ReputationOut
from greenguardian.routes.auth import CurrentReporter
from greenguardian.services.evidence import INCIDENT_COLLECTION
from greenguardian.services.reputation import compute_reputation

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/me/reputation", response_model=ReputationOut)
async def my_reputation(current_user: CurrentReporter, store=Depends(get_store)):
    """Return the authenticated user's reputation score."""
    if store is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    history = await store.find_documents(INCIDENT_COLLECTION, {"reporter_id": current_user.id})
    return ReputationOut(
        user_id=current_user.id,
        reputation=compute_reputation(history),
        report_count=len(history),
    )
