from pydantic import BaseModel, Field
from enum import Enum
from typing import Optional, List


class DepositStatusModel(str, Enum):
    wait = "wait"  # minimum observation delay not elapsed
    pending = "pending"  # no matching transfer yet
    credited = "credited"


class AssuranceModel(str, Enum):
    memo = "memo"
    amount_time = "amount_time"  # memo not exposed, matched on amount + time only


class PlaceBetModel(BaseModel):
    account: str
    round_id: int
    category: str
    stake: int


class PlaceBetResultModel(BaseModel):
    account: str
    round_id: int
    category: str
    staked: int
    balance_nano: int


class SettleRequestModel(BaseModel):
    account: str


class SettledRoundModel(BaseModel):
    round_id: int
    winner_index: int
    winning_category: str
    credited: int


class SettleResultModel(BaseModel):
    account: str
    last_completed_round_id: int
    settled_rounds: List[SettledRoundModel] = Field(default_factory=list)
    total_credited: int = 0


class HistoryItemModel(BaseModel):
    round_id: int
    winner_index: int
    category: str

    class Config:
        from_attributes = True


class RoundStateModel(BaseModel):
    server_now: int
    round_id: int
    phase: str
    round_start: int
    active_end: int
    next_round_start: int
    period_ms: int
    outcome_preview: Optional[int] = None  # hidden while bets are open
    history: List[HistoryItemModel] = Field(default_factory=list)


class BalanceModel(BaseModel):
    account: str
    balance_nano: int


class DepositIntentRequestModel(BaseModel):
    requested_amount: int
    account: Optional[str] = None


class DepositIntentModel(BaseModel):
    intent_id: str
    treasury_account: str
    requested_amount: int
    exact_amount_to_send: int
    comment: str
    payload_base64: str
    created_at: int


class DepositConfirmRequestModel(BaseModel):
    intent_id: str
    account: str


class DepositConfirmModel(BaseModel):
    status: DepositStatusModel
    credited_amount: Optional[int] = None
    transfer_id: Optional[str] = None
    assurance: Optional[AssuranceModel] = None


class DepositResumeRequestModel(BaseModel):
    account: str


class DepositResumeModel(BaseModel):
    account: str
    pending_count: int
    checked: int
    credited: int
    pending: int
    waiting: int
    expired: int
