"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - Load balancers / orchestrators
  - The portal, to check API connectivity

Returns status + DB connectivity + duplicate-detection cache state so
callers can distinguish between "API down", "API up but DB unreachable"
and "API up but still warming the candidate cache".
"""

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from greenguardian.core import database as db_module
from greenguardian.core.config import settings
from greenguardian.services.candidate_cache import report_candidates

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    database: str  # "connected" | "disconnected"
    environment: str
    candidates_loaded: bool
    candidate_count: Optional[int] = None


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    """
    Returns the liveness status of the API and its database connection.

    The API is considered healthy (HTTP 200) even when the database is
    disconnected — that lets upstream systems distinguish between a
    total API failure and a DB-only issue.
    """
    db_status = "disconnected"
    try:
        # Access via module reference so tests can patch db_module.db_client
        if db_module.db_client.client is not None:
            await db_module.db_client.client.admin.command("ping")
            db_status = "connected"
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)

    loaded = report_candidates.loaded
    return HealthResponse(
        status="ok",
        version="0.1.0",
        database=db_status,
        environment=settings.environment,
        candidates_loaded=loaded,
        candidate_count=len(report_candidates.snapshot()) if loaded else None,
    )
