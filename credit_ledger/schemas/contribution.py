from __future__ import annotations
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime

class ContributionPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    contribution_type: str
    reference_type: str | None = None
    reference_id: str | None = None
    amount_requested: int
    amount_earned: int
    status: str
    verified_by: UUID | None = None
    verified_at: datetime | None = None
    description: str | None = None
    created_at: datetime

class SubmitContributionRequest(BaseModel):
    contribution_type: Literal["project_work", "event_hosting", "event_participation", "mentorship", "community_help"]
    amount_requested: int
    description: str | None = None
    reference_type: str | None = Field(default=None, max_length=32)
    reference_id: str | None = Field(default=None, max_length=64)

class VerifyContributionRequest(BaseModel):
    verifier_id: UUID
    action: Literal["verify", "reject"] = "verify"
    amount_override: int | None = None
