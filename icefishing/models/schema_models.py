from pydantic import BaseModel
from typing import Optional
from enum import Enum


class IntentStatus(str, Enum):
    created = "created"
    credited = "credited"


class HistoryEntrySchema(BaseModel):
    round_id: int
    winner_index: int
    category: str

    class Config:
        from_attributes = True


class DepositIntentSchema(BaseModel):
    intent_id: str
    treasury_account: str
    amount: int  # nominal amount credited on match
    exact_amount: int  # amount + salt, what the sender must transfer
    comment: str
    created_at: int  # ms
    status: IntentStatus = IntentStatus.created
    account: Optional[str] = None
    transfer_id: Optional[str] = None
    credited_at: Optional[int] = None
    assurance: Optional[str] = None

    class Config:
        from_attributes = True


class TransferSchema(BaseModel):
    """One incoming transfer, normalized from the external ledger's response."""

    transfer_id: str
    amount: int
    sender: Optional[str] = None
    timestamp_ms: int
    memo: Optional[str] = None  # None: the collaborator did not expose a memo
