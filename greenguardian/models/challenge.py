"""
challenge.py — Pydantic schemas for community challenges and participation.

MongoDB document shapes:

  challenges:
    {
      "title": "Pasig River Cleanup", "description": "...", "category": "cleanup",
      "required_actions": 3,
      "start_date": ISODate(...) | null, "end_date": ISODate(...) | null,
      "is_active": true,
      "sponsor_id": "65f0a..." | null, "sponsor_name": "EcoCorp" | null,
      "created_by": "65f0a...", "created_at": ISODate(...)
    }

  challenge_participants (one per user per challenge):
    {
      "user_id": "65f0c...", "user_name": "Ana Santos", "challenge_id": "65f0e...",
      "completed_actions": 3, "is_completed": true, "completed_at": ISODate(...),
      "is_verified": false, "verified_by": null, "verified_at": null,
      "joined_at": ISODate(...)
    }
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ChallengeCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=120)
    description: str = Field(default="", max_length=2000)
    category: str = Field(default="general", max_length=60)
    required_actions: int = Field(default=1, ge=1, le=1000)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ChallengeOut(BaseModel):
    id: str
    title: str
    description: str = ""
    category: Optional[str] = None
    required_actions: int = 1
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True
    sponsor_id: Optional[str] = None
    sponsor_name: Optional[str] = None
    participant_count: int = 0


class LogActionRequest(BaseModel):
    count: int = Field(default=1, ge=1, le=50)


class ParticipationOut(BaseModel):
    id: str
    user_id: str
    user_name: Optional[str] = None
    challenge_id: str
    completed_actions: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    is_verified: bool = False
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    has_certificate: bool = False
