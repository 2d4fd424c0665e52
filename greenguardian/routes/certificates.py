"""
certificates.py — Challenge participation certificates.

Routes:
  POST /api/v1/certificates                         — issue for a completed challenge
  GET  /api/v1/certificates/mine                    — caller's certificates, newest first
  GET  /api/v1/certificates/verify/{number}         — public lookup by certificate number
  GET  /api/v1/certificates/{number}/html           — printable certificate

Eligibility rules live in services/certificates.py.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse

from greenguardian.core.database import get_store
from greenguardian.models.certificate import CertificateOut, IssueCertificateRequest
from greenguardian.routes.auth import CurrentReporter
from greenguardian.services.certificates import (
    CERTIFICATE_COLLECTION,
    CertificateAlreadyIssued,
    CertificateNotEligible,
    issue_certificate,
)
from greenguardian.services.challenges import ChallengeNotFound
from greenguardian.services.document_renderer import render_certificate_html

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/certificates", tags=["certificates"])


async def _find_by_number(store, certificate_number: str) -> dict:
    if store is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    doc = await store.find_one(CERTIFICATE_COLLECTION, {"certificate_number": certificate_number})
    if doc is None:
        raise HTTPException(status_code=404, detail="Certificate not found")
    return doc


@router.post("", response_model=CertificateOut, status_code=status.HTTP_201_CREATED)
async def create_certificate(
    payload: IssueCertificateRequest,
    current_user: CurrentReporter,
    store=Depends(get_store),
):
    """Issue the caller's certificate for a completed challenge."""
    if store is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    try:
        doc = await issue_certificate(store, current_user, payload.challenge_id)
    except ChallengeNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except CertificateNotEligible as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except CertificateAlreadyIssued as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    return CertificateOut.model_validate(doc)


@router.get("/mine", response_model=list[CertificateOut])
async def my_certificates(current_user: CurrentReporter, store=Depends(get_store)):
    if store is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    docs = await store.find_documents(
        CERTIFICATE_COLLECTION, {"user_id": current_user.id}, sort=[("issue_date", -1)]
    )
    return [CertificateOut.model_validate(d) for d in docs]


@router.get("/verify/{certificate_number}", response_model=CertificateOut)
async def verify_certificate(certificate_number: str, store=Depends(get_store)):
    """Public: confirm a certificate number was issued by GreenGuardian."""
    doc = await _find_by_number(store, certificate_number)
    return CertificateOut.model_validate(doc)


@router.get("/{certificate_number}/html", response_class=HTMLResponse)
async def certificate_html(certificate_number: str, store=Depends(get_store)):
    doc = await _find_by_number(store, certificate_number)
    return HTMLResponse(render_certificate_html(doc, sponsor_name=doc.get("sponsor_name")))
