"""
challenges.py — Community challenges and per-user participation.

Lifecycle of one participation record:

    join ──► log actions ──(completed_actions ≥ required_actions)──► completed
                                                   │
                      sponsored challenge only ────┴──► verified by the sponsor

A completed (and, when sponsored, verified) participation is what makes a
user eligible for a certificate (see certificates.py).

Action logging is a read-modify-write of `completed_actions`; concurrent
logs from the same user are last-write-wins like every other update here.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from greenguardian.core.store import DocumentStore
from greenguardian.models.challenge import ChallengeCreate
from greenguardian.models.user import ReporterProfile

logger = logging.getLogger(__name__)

CHALLENGE_COLLECTION = "challenges"
PARTICIPANT_COLLECTION = "challenge_participants"
CERTIFICATE_COLLECTION = "certificates"

ORGANIZER_ROLES = {"ngo", "government", "school", "partner"}


class ChallengeError(Exception):
    """Base class for challenge / participation failures."""


class ChallengeNotFound(ChallengeError):
    pass


class ChallengeClosed(ChallengeError):
    pass


class NotParticipating(ChallengeError):
    pass


class ParticipationIncomplete(ChallengeError):
    pass


class NotChallengeSponsor(ChallengeError):
    pass


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def is_open(challenge: dict, now: datetime) -> bool:
    if challenge.get("is_active") is False:
        return False
    end = challenge.get("end_date")
    return end is None or _as_utc(end) >= now


async def create_challenge(
    store: DocumentStore,
    organizer: ReporterProfile,
    payload: ChallengeCreate,
    now: Optional[datetime] = None,
) -> dict:
    """Partners become the sponsor of the challenges they create."""
    now = now or _utcnow()
    doc = {
        **payload.model_dump(),
        "is_active": True,
        "sponsor_id": organizer.id if organizer.role == "partner" else None,
        "sponsor_name": organizer.name if organizer.role == "partner" else None,
        "created_by": organizer.id,
        "created_at": now,
    }
    challenge_id = await store.create_document(CHALLENGE_COLLECTION, doc)
    logger.info("Challenge %s created by %s", challenge_id, organizer.id)
    return {**doc, "id": challenge_id}


async def get_challenge(store: DocumentStore, challenge_id: str) -> dict:
    challenge = await store.get_document(CHALLENGE_COLLECTION, challenge_id)
    if challenge is None:
        raise ChallengeNotFound("Challenge not found")
    return challenge


async def join_challenge(
    store: DocumentStore,
    user: ReporterProfile,
    challenge_id: str,
    now: Optional[datetime] = None,
) -> dict:
    """Return the caller's participation, creating it on first join."""
    now = now or _utcnow()
    challenge = await get_challenge(store, challenge_id)

    existing = await store.find_one(
        PARTICIPANT_COLLECTION, {"user_id": user.id, "challenge_id": challenge_id}
    )
    if existing is not None:
        return existing
    if not is_open(challenge, now):
        raise ChallengeClosed("This challenge is no longer accepting participants")

    doc = {
        "user_id": user.id,
        "user_name": user.name,
        "challenge_id": challenge_id,
        "completed_actions": 0,
        "is_completed": False,
        "completed_at": None,
        "is_verified": False,
        "verified_by": None,
        "verified_at": None,
        "joined_at": now,
    }
    participation_id = await store.create_document(PARTICIPANT_COLLECTION, doc)
    logger.info("User %s joined challenge %s", user.id, challenge_id)
    return {**doc, "id": participation_id}


async def log_actions(
    store: DocumentStore,
    user: ReporterProfile,
    challenge_id: str,
    count: int = 1,
    now: Optional[datetime] = None,
) -> dict:
    now = now or _utcnow()
    challenge = await get_challenge(store, challenge_id)
    participation = await store.find_one(
        PARTICIPANT_COLLECTION, {"user_id": user.id, "challenge_id": challenge_id}
    )
    if participation is None:
        raise NotParticipating("Join the challenge before logging actions")
    if not is_open(challenge, now):
        raise ChallengeClosed("This challenge has ended")

    completed = (participation.get("completed_actions") or 0) + count
    changes: dict = {"completed_actions": completed}
    required = challenge.get("required_actions") or 1
    if not participation.get("is_completed") and completed >= required:
        changes["is_completed"] = True
        changes["completed_at"] = now
        logger.info("User %s completed challenge %s", user.id, challenge_id)

    await store.update_document(PARTICIPANT_COLLECTION, participation["id"], changes)
    return {**participation, **changes}


def can_manage(user: ReporterProfile, challenge: dict) -> bool:
    """The sponsor manages a sponsored challenge; government manages all."""
    return user.role == "government" or (
        challenge.get("sponsor_id") is not None and challenge.get("sponsor_id") == user.id
    )


async def list_participants(store: DocumentStore, manager: ReporterProfile, challenge_id: str) -> list[dict]:
    challenge = await get_challenge(store, challenge_id)
    if not can_manage(manager, challenge):
        raise NotChallengeSponsor("Only the challenge sponsor can view its participants")

    participants = await store.find_documents(
        PARTICIPANT_COLLECTION, {"challenge_id": challenge_id}, sort=[("joined_at", 1)]
    )
    certified = {
        c["user_id"]
        for c in await store.find_documents(CERTIFICATE_COLLECTION, {"challenge_id": challenge_id})
    }
    return [{**p, "has_certificate": p["user_id"] in certified} for p in participants]


async def verify_participant(
    store: DocumentStore,
    sponsor: ReporterProfile,
    challenge_id: str,
    user_id: str,
    now: Optional[datetime] = None,
) -> dict:
    now = now or _utcnow()
    challenge = await get_challenge(store, challenge_id)
    if not can_manage(sponsor, challenge):
        raise NotChallengeSponsor("Only the challenge sponsor can verify participants")

    participation = await store.find_one(
        PARTICIPANT_COLLECTION, {"user_id": user_id, "challenge_id": challenge_id}
    )
    if participation is None:
        raise NotParticipating("That user has not joined this challenge")
    if not participation.get("is_completed"):
        raise ParticipationIncomplete("Only completed participations can be verified")

    changes = {"is_verified": True, "verified_by": sponsor.id, "verified_at": now}
    await store.update_document(PARTICIPANT_COLLECTION, participation["id"], changes)
    logger.info("Participation of %s in %s verified by %s", user_id, challenge_id, sponsor.id)
    return {**participation, **changes}
