"""
Pydantic schemas for Transaction endpoints.

All monetary amounts are integers in Rupiah (the smallest currency unit).
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from ppob_ledger.models.transaction import TransactionStatus


class TransactionCreateRequest(BaseModel):
    """Request body for POST /transactions."""
    product_id: uuid.UUID
    customer_number: str = Field(min_length=1, max_length=100)
    date: datetime | None = Field(
        None, description="Optional backdated transaction time"
    )


class TransactionStatusUpdateRequest(BaseModel):
    """Request body for PATCH /transactions/{id}."""
    status: TransactionStatus
    error_message: str | None = Field(None, max_length=255)


class TransactionResponse(BaseModel):
    """Public representation of a transaction."""
    id: uuid.UUID
    transaction_code: str
    user_id: uuid.UUID
    product_id: uuid.UUID
    customer_number: str
    amount: int
    base_price: int
    fee: int
    profit: int
    status: TransactionStatus
    error_message: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    pagination: Pagination


class TransactionDeleteResponse(BaseModel):
    message: str
    refunded: bool
    balance_log_id: uuid.UUID | None = None
