"""
user.py — Pydantic schemas for user-related responses.

ReporterProfile — the authenticated caller, read from the `users` collection
ReputationOut   — a user's current credibility score

Accounts are created by the platform's auth service; this API only reads
them, so there is no create / password model here.
"""

from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


UserRole = Literal["citizen", "ngo", "government", "school", "partner"]


class ReporterProfile(BaseModel):
    """Safe user representation — no secrets."""
    id: str
    email: Optional[EmailStr] = None
    display_name: Optional[str] = None
    role: UserRole = "citizen"

    @property
    def name(self) -> str:
        """Name denormalised onto new reports."""
        return self.display_name or "Anonymous"


class ReputationOut(BaseModel):
    """Response body for GET /api/v1/users/me/reputation."""
    user_id: str
    reputation: int = Field(ge=0, le=100)
    report_count: int
