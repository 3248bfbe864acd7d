"""
Pydantic schemas for the balance ledger endpoints.

All monetary amounts are integers in Rupiah (the smallest currency unit).
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from ppob_ledger.models.balance_log import BalanceLogType
from ppob_ledger.schemas.transaction import Pagination


class TopUpRequest(BaseModel):
    """Request body for POST /balance/top-up."""
    amount: int = Field(gt=0, description="Amount to credit (must be positive)")
    description: str | None = Field(None, max_length=255)
    target_user_id: uuid.UUID | None = Field(
        None, description="Admin only: credit another user's balance"
    )
    date: datetime | None = None


class BalanceAdjustRequest(BaseModel):
    """Request body for POST /balance/adjust."""
    user_id: uuid.UUID
    new_balance: int
    description: str | None = Field(None, max_length=255)


class BalanceLogUpdateRequest(BaseModel):
    """Request body for PUT /balance/logs/{id}."""
    amount: int | None = Field(None, gt=0)
    description: str | None = Field(None, max_length=255)
    date: datetime | None = None


class BalanceLogResponse(BaseModel):
    """Public representation of a ledger entry."""
    id: uuid.UUID
    user_id: uuid.UUID
    type: BalanceLogType
    amount: int
    balance_before: int
    balance_after: int
    description: str | None
    reference_id: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TopUpResponse(BaseModel):
    balance_log: BalanceLogResponse
    new_balance: int


class BalanceLogListResponse(BaseModel):
    logs: list[BalanceLogResponse]
    today_count: int
    pagination: Pagination


class BalanceLogUpdateResponse(BaseModel):
    message: str
    log: BalanceLogResponse
    adjustment: int


class BalanceLogDeleteResponse(BaseModel):
    message: str
    balance_reversed: bool
    adjustment: int
    warning: str | None = None


class BalanceAdjustResponse(BaseModel):
    balance_log: BalanceLogResponse | None
    new_balance: int


class BalanceResponse(BaseModel):
    user_id: uuid.UUID
    balance: int


class BalanceVerificationResponse(BaseModel):
    """
    Balance check response — stored balance vs. the replayed ledger.

    `match` is False only after a history-only ledger delete (or a bug).
    """
    user_id: uuid.UUID
    balance: int
    computed_balance: int
    match: bool
