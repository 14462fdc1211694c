from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID

class BalancesPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: UUID
    genesis_balance: int
    earned_balance: int
    genesis_burned: int
    lifetime_earned: int

class OpenAccountRequest(BaseModel):
    user_id: UUID
    genesis_grant: int | None = Field(default=None, ge=0)

class OpenAccountResponse(BaseModel):
    balances: BalancesPublic
    created: bool

class AuditResponse(BaseModel):
    account_id: UUID
    consistent: bool
    cached: BalancesPublic
    replayed_genesis_balance: int
    replayed_earned_balance: int
    replayed_genesis_burned: int
    replayed_lifetime_earned: int
    entries: int
    mismatches: list[str]

class ReputationMultiplierRequest(BaseModel):
    multiplier: float

class ReputationMultiplierResponse(BaseModel):
    account_id: UUID
    reputation_multiplier: float
