"""
Transactions router — PPOB sales and their corrections.

Cashier endpoints (scoped to the authenticated user's own sales):
  POST   /transactions          — Sell a product from your balance
  GET    /transactions          — List transactions (with filters)
  GET    /transactions/{id}     — Get a single transaction

Admin endpoints:
  PATCH  /transactions/{id}     — Correct a transaction's status
  DELETE /transactions/{id}     — Delete a transaction (refunds SUCCESS sales)
"""

import math
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.database import get_db
from ppob_ledger.dependencies import get_current_user, require_admin, is_admin
from ppob_ledger.exceptions import TransactionNotFoundError
from ppob_ledger.models.transaction import TransactionStatus
from ppob_ledger.models.user import User
from ppob_ledger.schemas.transaction import (
    Pagination,
    TransactionCreateRequest,
    TransactionDeleteResponse,
    TransactionListResponse,
    TransactionResponse,
    TransactionStatusUpdateRequest,
)
from ppob_ledger.services import transaction_service
from ppob_ledger.services.settlement import SettlementProvider, get_settlement_provider

router = APIRouter()


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a transaction",
)
async def create_transaction(
    request: TransactionCreateRequest,
    user: User = Depends(get_current_user),
    settlement: SettlementProvider = Depends(get_settlement_provider),
    db: AsyncSession = Depends(get_db),
):
    """
    Sell a product to a customer number.

    - **EXPENSE** categories debit the product's base price from your
      balance and are rejected (422) when the balance cannot cover it.
    - **INCOME** categories credit the base price and are never
      balance-checked.

    A sale the provider rejects is returned with status **FAILED** and
    leaves the balance untouched.
    """
    return await transaction_service.create_transaction(
        db=db,
        user_id=user.id,
        product_id=request.product_id,
        customer_number=request.customer_number,
        created_at=request.date,
        settlement=settlement,
    )


@router.get(
    "",
    response_model=TransactionListResponse,
    summary="List transactions",
)
async def list_transactions(
    status_filter: TransactionStatus | None = Query(None, alias="status", description="Filter by status"),
    search: str | None = Query(None, description="Transaction code or customer number"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List transactions newest first. Cashiers only see their own."""
    transactions, total = await transaction_service.list_transactions(
        db=db,
        status_filter=status_filter,
        search=search,
        user_id=None if is_admin(user) else user.id,
        page=page,
        page_size=limit,
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)
        ),
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get details for a specific transaction."""
    txn = await transaction_service.get_transaction(db, transaction_id)
    # Another cashier's sale is reported as missing rather than forbidden
    if not is_admin(user) and txn.user_id != user.id:
        raise TransactionNotFoundError(transaction_id)
    return txn


@router.patch(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="[Admin] Correct a transaction's status",
)
async def update_transaction_status(
    transaction_id: uuid.UUID,
    request: TransactionStatusUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Correct a transaction's status, adjusting the owner's balance:

    - SUCCESS/PENDING → FAILED refunds the base price
    - FAILED → SUCCESS charges it again (422 if the balance cannot cover it)
    - Any other change has no balance effect
    """
    return await transaction_service.correct_transaction_status(
        db=db,
        transaction_id=transaction_id,
        new_status=request.status,
        actor_id=admin.id,
        note=request.error_message,
    )


@router.delete(
    "/{transaction_id}",
    response_model=TransactionDeleteResponse,
    summary="[Admin] Delete a transaction",
)
async def delete_transaction(
    transaction_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a transaction. A SUCCESS sale is reversed first, with a new
    ledger entry referencing the deleted transaction; the original charge
    entry stays in the ledger.
    """
    reversal = await transaction_service.delete_transaction(
        db=db,
        transaction_id=transaction_id,
        actor_id=admin.id,
    )
    if reversal is None:
        return TransactionDeleteResponse(message="Transaction deleted", refunded=False)
    return TransactionDeleteResponse(
        message="Transaction deleted and balance reversed",
        refunded=True,
        balance_log_id=reversal.id,
    )
