"""
auth.py — Caller identification.

Routes:
  GET /auth/me  — return the current user (requires valid JWT)

Accounts and logins live in the platform's auth service. This module only
turns a Bearer token into a ReporterProfile for the other routes:

    async def my_route(reporter: CurrentReporter): ...
    async def review(reviewer: CurrentReviewer): ...   # government accounts only

All errors use HTTPException so FastAPI serialises them as:
  { "detail": "..." }
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from greenguardian.core.database import get_store
from greenguardian.core.security import decode_access_token
from greenguardian.core.store import DocumentStore
from greenguardian.models.user import ReporterProfile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

USER_COLLECTION = "users"
REVIEWER_ROLES = {"government"}

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)]


# ── Helpers ───────────────────────────────────────────────────────────────────

async def load_reporter(store: DocumentStore, token: Optional[str]) -> Optional[ReporterProfile]:
    """Resolve a raw JWT to an active user's profile, or None."""
    if not token:
        return None
    user_id = decode_access_token(token)
    if not user_id:
        return None

    doc = await store.get_document(USER_COLLECTION, user_id)
    if not doc or not doc.get("is_active", True):
        return None

    try:
        return ReporterProfile(
            id=doc["id"],
            email=doc.get("email"),
            display_name=doc.get("display_name"),
            role=doc.get("role", "citizen"),
        )
    except ValidationError as exc:
        logger.warning("Unusable user document %s: %s", user_id, exc)
        return None


async def _get_current_reporter(
    credentials: CredDep,
    store=Depends(get_store),
) -> ReporterProfile:
    """
    FastAPI dependency — extracts and validates the Bearer token,
    then fetches the user from MongoDB.

    Raises 401 if the token is missing, invalid, or the user no longer exists.
    """
    cred_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        raise cred_error
    if store is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    reporter = await load_reporter(store, credentials.credentials)
    if reporter is None:
        raise cred_error
    return reporter


CurrentReporter = Annotated[ReporterProfile, Depends(_get_current_reporter)]


async def _require_reviewer(reporter: CurrentReporter) -> ReporterProfile:
    if reporter.role not in REVIEWER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only government accounts can review incident reports",
        )
    return reporter


CurrentReviewer = Annotated[ReporterProfile, Depends(_require_reviewer)]


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/me", response_model=ReporterProfile)
async def me(current_user: CurrentReporter):
    """Return the currently authenticated user's profile."""
    return current_user
