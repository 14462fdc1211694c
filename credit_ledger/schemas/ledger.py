from __future__ import annotations
from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime

class LedgerEntryPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    seq: int
    credit_type: str
    amount: int
    balance_after: int
    description: str | None = None
    source: str
    source_id: str | None = None
    created_at: datetime

class LedgerPage(BaseModel):
    entries: list[LedgerEntryPublic]
    next_cursor: int | None = None  # pass back as ?cursor= to resume
