from __future__ import annotations
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime

class PayoutPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    amount: int
    status: str
    payout_method_id: UUID | None = None
    provider_reference: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

class PayoutRequest(BaseModel):
    amount: int
    payout_method_id: UUID | None = None
    credit_type: Literal["earned", "genesis"] = "earned"

class FailPayoutRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=255)

class ReconcileResponse(BaseModel):
    failed: int
    cancelled: int
    skipped: int

class PayoutMethodPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    method_type: str
    brand: str | None = None
    last_four: str | None = None
    is_default: bool
    created_at: datetime

class AddPayoutMethodRequest(BaseModel):
    provider_method_id: str = Field(min_length=1, max_length=64)
    method_type: Literal["bank_account", "debit_card", "apple_pay"]
    brand: str | None = Field(default=None, max_length=32)
    last_four: str | None = Field(default=None, pattern=r"^\d{4}$")
    is_default: bool = False
