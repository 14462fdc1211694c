from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from credit_ledger.schemas.ledger import LedgerEntryPublic

# Amounts are validated by the engines (InvalidAmount -> 400 with a code);
# the schemas only pin the types.

class EarnRequest(BaseModel):
    account_id: UUID
    amount: int
    source: str = Field(max_length=32)
    source_id: str | None = Field(default=None, max_length=64)
    description: str | None = Field(default=None, max_length=255)

class BurnRequest(BaseModel):
    amount: int
    source: str = Field(default="redemption", max_length=32)
    source_id: str | None = Field(default=None, max_length=64)
    description: str | None = Field(default=None, max_length=255)

class TransferRequest(BaseModel):
    recipient_id: UUID
    amount: int
    note: str | None = Field(default=None, max_length=255)
    transfer_id: str | None = Field(default=None, max_length=64)

class TransferResponse(BaseModel):
    transfer_id: str
    sender_id: UUID
    recipient_id: UUID
    amount: int
    sender_entry: LedgerEntryPublic
    recipient_entry: LedgerEntryPublic
    created: bool
