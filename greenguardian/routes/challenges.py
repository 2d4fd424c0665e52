"""
challenges.py — Community challenges, participation and sponsor verification.

Routes:
  GET  /api/v1/challenges                                   — open challenges (all with ?include_closed=true)
  POST /api/v1/challenges                                   — create (ngo / government / school / partner)
  GET  /api/v1/challenges/mine                              — caller's participations
  POST /api/v1/challenges/{id}/join                         — join (idempotent)
  POST /api/v1/challenges/{id}/actions                      — log completed actions
  GET  /api/v1/challenges/{id}/participants                 — sponsor / government view
  POST /api/v1/challenges/{id}/participants/{user}/verify   — sponsor confirms a completion

Completing and (for sponsored challenges) being verified is what
POST /api/v1/certificates checks before issuing a certificate.
"""

import logging
from collections import Counter
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status

from greenguardian.core.database import get_store
from greenguardian.models.challenge import (
    ChallengeCreate,
    ChallengeOut,
    LogActionRequest,
    ParticipationOut,
)
from greenguardian.routes.auth import CurrentReporter
from greenguardian.services.challenges import (
    CHALLENGE_COLLECTION,
    ORGANIZER_ROLES,
    PARTICIPANT_COLLECTION,
    ChallengeClosed,
    ChallengeError,
    ChallengeNotFound,
    NotChallengeSponsor,
    NotParticipating,
    ParticipationIncomplete,
    create_challenge,
    is_open,
    join_challenge,
    list_participants,
    log_actions,
    verify_participant,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/challenges", tags=["challenges"])

_ERROR_STATUS = {
    ChallengeNotFound: 404,
    NotParticipating: 404,
    NotChallengeSponsor: 403,
    ChallengeClosed: 409,
    ParticipationIncomplete: 409,
}


def _require_store(store):
    if store is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return store


def _http_error(exc: ChallengeError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS.get(type(exc), 400), detail=str(exc))


@router.get("", response_model=list[ChallengeOut])
async def list_challenges(
    current_user: CurrentReporter,
    include_closed: bool = Query(False),
    store=Depends(get_store),
):
    store = _require_store(store)
    now = datetime.now(tz=timezone.utc)

    challenges = await store.find_documents(CHALLENGE_COLLECTION, sort=[("created_at", -1)])
    if not include_closed:
        challenges = [c for c in challenges if is_open(c, now)]

    counts = Counter(p["challenge_id"] for p in await store.find_documents(PARTICIPANT_COLLECTION))
    return [ChallengeOut.model_validate({**c, "participant_count": counts[c["id"]]}) for c in challenges]


@router.post("", response_model=ChallengeOut, status_code=status.HTTP_201_CREATED)
async def new_challenge(payload: ChallengeCreate, current_user: CurrentReporter, store=Depends(get_store)):
    store = _require_store(store)
    if current_user.role not in ORGANIZER_ROLES:
        raise HTTPException(status_code=403, detail="Citizens cannot create challenges")
    if payload.start_date and payload.end_date and payload.end_date < payload.start_date:
        raise HTTPException(status_code=422, detail="end_date must be after start_date")

    doc = await create_challenge(store, current_user, payload)
    return ChallengeOut.model_validate(doc)


@router.get("/mine", response_model=list[ParticipationOut])
async def my_participations(current_user: CurrentReporter, store=Depends(get_store)):
    store = _require_store(store)
    docs = await store.find_documents(
        PARTICIPANT_COLLECTION, {"user_id": current_user.id}, sort=[("joined_at", -1)]
    )
    return [ParticipationOut.model_validate(d) for d in docs]


@router.post("/{challenge_id}/join", response_model=ParticipationOut)
async def join(challenge_id: str, current_user: CurrentReporter, store=Depends(get_store)):
    store = _require_store(store)
    try:
        doc = await join_challenge(store, current_user, challenge_id)
    except ChallengeError as exc:
        raise _http_error(exc)
    return ParticipationOut.model_validate(doc)


@router.post("/{challenge_id}/actions", response_model=ParticipationOut)
async def log_challenge_actions(
    challenge_id: str,
    payload: LogActionRequest,
    current_user: CurrentReporter,
    store=Depends(get_store),
):
    store = _require_store(store)
    try:
        doc = await log_actions(store, current_user, challenge_id, payload.count)
    except ChallengeError as exc:
        raise _http_error(exc)
    return ParticipationOut.model_validate(doc)


@router.get("/{challenge_id}/participants", response_model=list[ParticipationOut])
async def participants(challenge_id: str, current_user: CurrentReporter, store=Depends(get_store)):
    store = _require_store(store)
    try:
        docs = await list_participants(store, current_user, challenge_id)
    except ChallengeError as exc:
        raise _http_error(exc)
    return [ParticipationOut.model_validate(d) for d in docs]


@router.post("/{challenge_id}/participants/{user_id}/verify", response_model=ParticipationOut)
async def verify(challenge_id: str, user_id: str, current_user: CurrentReporter, store=Depends(get_store)):
    store = _require_store(store)
    try:
        doc = await verify_participant(store, current_user, challenge_id, user_id)
    except ChallengeError as exc:
        raise _http_error(exc)
    return ParticipationOut.model_validate(doc)
