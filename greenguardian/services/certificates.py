"""
certificates.py — Participation certificates for completed challenges.

A user may hold one certificate per challenge. Eligibility comes from the
user's `challenge_participants` record: the challenge must be completed,
and sponsored challenges must also have been verified by the sponsor.

Certificate numbers look like GG-1718000000000-65F0C1 (issue time in epoch
milliseconds + first six characters of the user ID, upper-cased) and are
what the public verification page looks up.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from greenguardian.core.store import DocumentStore
from greenguardian.models.user import ReporterProfile
from greenguardian.services.challenges import (
    CERTIFICATE_COLLECTION,
    PARTICIPANT_COLLECTION,
    ChallengeNotFound,
    get_challenge,
)

logger = logging.getLogger(__name__)


class CertificateError(Exception):
    """Base class for certificate issuance failures."""


class CertificateNotEligible(CertificateError):
    pass


class CertificateAlreadyIssued(CertificateError):
    pass


def certificate_number(user_id: str, issued_at: datetime) -> str:
    return f"GG-{int(issued_at.timestamp() * 1000)}-{user_id[:6].upper()}"


async def issue_certificate(
    store: DocumentStore,
    user: ReporterProfile,
    challenge_id: str,
    now: Optional[datetime] = None,
) -> dict:
    """Create and return the certificate document for *challenge_id*."""
    now = now or datetime.now(tz=timezone.utc)

    challenge = await get_challenge(store, challenge_id)

    participation = await store.find_one(
        PARTICIPANT_COLLECTION, {"user_id": user.id, "challenge_id": challenge_id}
    )
    if not participation or not participation.get("is_completed"):
        raise CertificateNotEligible(
            "This challenge must be completed before you can generate a certificate."
        )
    if challenge.get("sponsor_id") and not participation.get("is_verified"):
        sponsor = challenge.get("sponsor_name") or "Sponsor"
        raise CertificateNotEligible(
            f"You must be verified by the sponsor ({sponsor}) before you can "
            "generate your certificate."
        )

    existing = await store.find_one(
        CERTIFICATE_COLLECTION, {"user_id": user.id, "challenge_id": challenge_id}
    )
    if existing is not None:
        raise CertificateAlreadyIssued(
            f"Certificate {existing.get('certificate_number')} was already issued"
        )

    doc = {
        "user_id": user.id,
        "user_name": user.display_name or user.email or "Participant",
        "challenge_id": challenge_id,
        "challenge_title": challenge.get("title", ""),
        "challenge_category": challenge.get("category"),
        "sponsor_name": challenge.get("sponsor_name"),
        "completed_actions": participation.get("completed_actions") or 0,
        "certificate_number": certificate_number(user.id, now),
        "verified": True,
        "issue_date": now,
        "completion_date": participation.get("completed_at") or now,
    }
    cert_id = await store.create_document(CERTIFICATE_COLLECTION, doc)
    logger.info("Issued certificate %s to %s", doc["certificate_number"], user.id)
    return {**doc, "id": cert_id}
