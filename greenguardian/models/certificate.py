"""
certificate.py — Pydantic schemas for challenge participation certificates.

MongoDB document shape (collection `certificates`):

  {
    "user_id": "65f0c...", "user_name": "Ana Santos",
    "challenge_id": "65f0e...", "challenge_title": "Pasig River Cleanup",
    "challenge_category": "cleanup", "sponsor_name": "EcoCorp",
    "completed_actions": 5,
    "certificate_number": "GG-1718000000000-65F0C1",
    "verified": true,
    "issue_date": ISODate(...), "completion_date": ISODate(...)
  }
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class IssueCertificateRequest(BaseModel):
    challenge_id: str = Field(..., min_length=1)


class CertificateOut(BaseModel):
    id: str
    user_id: str
    user_name: str
    challenge_id: str
    challenge_title: str
    challenge_category: Optional[str] = None
    sponsor_name: Optional[str] = None
    completed_actions: int = 0
    certificate_number: str
    verified: bool = True
    issue_date: datetime
    completion_date: Optional[datetime] = None
