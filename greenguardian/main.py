"""
GreenGuardian Incident API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
and manages the MongoDB connection lifecycle plus the background
subscription that keeps the duplicate-detection candidate cache fresh.

Extension points:
  - Add new route groups with app.include_router() below
  - Add new middleware in the middleware block
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from greenguardian.core import database as db_module
from greenguardian.core.config import settings
from greenguardian.core.database import close_mongo_connection, connect_to_mongo
from greenguardian.core.rate_limit import limiter
from greenguardian.routes.auth import router as auth_router
from greenguardian.routes.blobs import router as blobs_router
from greenguardian.routes.certificates import router as certificates_router
from greenguardian.routes.challenges import router as challenges_router
from greenguardian.routes.health import router as health_router
from greenguardian.routes.incidents import drain_evidence_uploads
from greenguardian.routes.incidents import router as incidents_router
from greenguardian.routes.users import router as users_router
from greenguardian.services.candidate_cache import report_candidates
from greenguardian.services.evidence import INCIDENT_COLLECTION

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage startup and shutdown lifecycle.

    Code before `yield` runs on startup; code after runs on shutdown.
    """
    logger.info("Starting GreenGuardian Incident API (env: %s)", settings.environment)
    await connect_to_mongo()

    subscription = None
    store = db_module.db_client.store
    if store is not None:
        report_candidates.set_loader(lambda: store.find_documents(INCIDENT_COLLECTION))
        subscription = store.subscribe(INCIDENT_COLLECTION, report_candidates.replace)
    else:
        logger.warning("No database: duplicate detection will see an empty report pool")

    yield

    logger.info("Shutting down GreenGuardian Incident API")
    if subscription is not None:
        await subscription.stop()
    await drain_evidence_uploads()
    report_candidates.clear()
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="GreenGuardian Incident API",
    description=(
        "Citizen environmental incident reporting: duplicate detection, "
        "reporter reputation, priority scoring and government review."
    ),
    version="0.1.0",
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Attach the limiter to app state so slowapi can find it.
# Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
# CORS: allow the citizen and government portals to call the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])

app.include_router(auth_router)
app.include_router(users_router)

app.include_router(incidents_router)
app.include_router(blobs_router)

app.include_router(challenges_router)
app.include_router(certificates_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "GreenGuardian Incident API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
