"""
Balance router — top-ups, the ledger, and operator corrections.

Cashier endpoints (scoped to the authenticated user's own balance):
  POST   /balance/top-up                 — Credit your balance
  GET    /balance/logs                   — List ledger entries
  GET    /balance/users/{user_id}        — Current balance
  GET    /balance/users/{user_id}/verify — Balance vs. replayed ledger

Admin endpoints:
  POST   /balance/top-up  (target_user_id) — Credit another user's balance
  PUT    /balance/logs/{id}                — Edit a ledger entry's amount
  DELETE /balance/logs/{id}                — Delete a ledger entry
  POST   /balance/adjust                   — Set a balance to an exact value
"""

import math
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.database import get_db
from ppob_ledger.dependencies import (
    ensure_self_or_admin,
    get_current_user,
    is_admin,
    require_admin,
)
from ppob_ledger.models.balance_log import BalanceLogType
from ppob_ledger.models.user import User
from ppob_ledger.schemas.balance import (
    BalanceAdjustRequest,
    BalanceAdjustResponse,
    BalanceLogDeleteResponse,
    BalanceLogListResponse,
    BalanceLogResponse,
    BalanceLogUpdateRequest,
    BalanceLogUpdateResponse,
    BalanceResponse,
    BalanceVerificationResponse,
    TopUpRequest,
    TopUpResponse,
)
from ppob_ledger.schemas.transaction import Pagination
from ppob_ledger.services import activity_service, balance_service

router = APIRouter()

HISTORY_ONLY_WARNING = (
    "The entry was removed from history only; the user's balance was not "
    "changed and no longer matches the ledger."
)


@router.post(
    "/top-up",
    response_model=TopUpResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Top up a balance",
)
async def top_up(
    request: TopUpRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Credit a balance. Cashiers always top up their own balance; admins may
    name a `target_user_id`.
    """
    target_id = request.target_user_id if (is_admin(user) and request.target_user_id) else user.id
    target = await balance_service.get_user(db, target_id)

    entry = await balance_service.top_up(
        db=db,
        user_id=target.id,
        magnitude=request.amount,
        description=request.description,
        created_at=request.date,
    )
    activity_service.record_activity(
        db,
        actor_id=user.id,
        action="TOP_UP",
        module=activity_service.MODULE_BALANCE,
        entity_id=entry.id,
        details=f"Top up saldo {balance_service.format_rupiah(request.amount)} untuk {target.name}",
    )
    return TopUpResponse(
        balance_log=BalanceLogResponse.model_validate(entry),
        new_balance=entry.balance_after,
    )


@router.get(
    "/logs",
    response_model=BalanceLogListResponse,
    summary="List ledger entries",
)
async def list_balance_logs(
    log_type: BalanceLogType | None = Query(None, alias="type", description="Filter by entry type"),
    user_id: uuid.UUID | None = Query(None, description="Admin only: filter by user"),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List ledger entries newest first. Cashiers only see their own."""
    scope = user_id if is_admin(user) else user.id
    entries, total, today_count = await balance_service.list_balance_logs(
        db=db,
        user_id=scope,
        log_type=log_type,
        start=start_date,
        end=end_date,
        page=page,
        page_size=limit,
    )
    return BalanceLogListResponse(
        logs=[BalanceLogResponse.model_validate(entry) for entry in entries],
        today_count=today_count,
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)
        ),
    )


@router.put(
    "/logs/{log_id}",
    response_model=BalanceLogUpdateResponse,
    summary="[Admin] Edit a ledger entry",
)
async def update_balance_log(
    log_id: uuid.UUID,
    request: BalanceLogUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Edit a ledger entry. Changing the amount carries the difference into
    the user's balance and moves the entry's balance_after with it.
    """
    log, adjustment = await balance_service.edit_balance_log(
        db=db,
        log_id=log_id,
        new_magnitude=request.amount,
        new_description=request.description,
        new_created_at=request.date,
    )
    activity_service.record_activity(
        db,
        actor_id=admin.id,
        action="UPDATE_BALANCE_LOG",
        module=activity_service.MODULE_BALANCE,
        entity_id=log.id,
        details=f"Memperbarui log {log.type.value}. Perubahan saldo: {adjustment}",
    )
    return BalanceLogUpdateResponse(
        message="Ledger entry updated",
        log=BalanceLogResponse.model_validate(log),
        adjustment=adjustment,
    )


@router.delete(
    "/logs/{log_id}",
    response_model=BalanceLogDeleteResponse,
    summary="[Admin] Delete a ledger entry",
)
async def delete_balance_log(
    log_id: uuid.UUID,
    reverse_balance: bool = Query(
        ..., description="True undoes the entry's balance effect; False removes history only"
    ),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a ledger entry.

    `reverse_balance` is required so the operator always chooses explicitly
    between undoing the entry's balance effect and a history-only delete.
    """
    if reverse_balance:
        log, adjustment = await balance_service.delete_balance_log_reversing(db, log_id)
    else:
        log = await balance_service.delete_balance_log_history_only(db, log_id)
        adjustment = 0
    suffix = "Saldo disesuaikan." if reverse_balance else "Saldo tidak diubah."
    activity_service.record_activity(
        db,
        actor_id=admin.id,
        action="DELETE_BALANCE_LOG",
        module=activity_service.MODULE_BALANCE,
        entity_id=log_id,
        details=(
            f"Menghapus log {log.type.value} senilai "
            f"{balance_service.format_rupiah(log.amount)}. {suffix}"
        ),
    )
    return BalanceLogDeleteResponse(
        message="Ledger entry deleted",
        balance_reversed=reverse_balance,
        adjustment=adjustment,
        warning=None if reverse_balance else HISTORY_ONLY_WARNING,
    )


@router.post(
    "/adjust",
    response_model=BalanceAdjustResponse,
    summary="[Admin] Set a balance to an exact value",
)
async def adjust_balance(
    request: BalanceAdjustRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Move a balance to `new_balance` with a single ADJUSTMENT entry."""
    entry = await balance_service.adjust_balance(
        db=db,
        user_id=request.user_id,
        new_balance=request.new_balance,
        description=request.description,
    )
    activity_service.record_activity(
        db,
        actor_id=admin.id,
        action="ADJUST_BALANCE",
        module=activity_service.MODULE_BALANCE,
        entity_id=entry.id if entry else request.user_id,
        details=f"Set saldo ke {balance_service.format_rupiah(request.new_balance)}",
    )
    return BalanceAdjustResponse(
        balance_log=BalanceLogResponse.model_validate(entry) if entry else None,
        new_balance=request.new_balance,
    )


@router.get(
    "/users/{user_id}",
    response_model=BalanceResponse,
    summary="Get a user's balance",
)
async def get_balance(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ensure_self_or_admin(user, user_id)
    balance = await balance_service.get_user_balance(db, user_id)
    return BalanceResponse(user_id=user_id, balance=balance)


@router.get(
    "/users/{user_id}/verify",
    response_model=BalanceVerificationResponse,
    summary="Compare a balance with its ledger",
)
async def verify_balance(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Return the stored balance next to the balance replayed from the ledger.
    A mismatch signals a history-only delete or a data integrity issue.
    """
    ensure_self_or_admin(user, user_id)
    return await balance_service.verify_user_balance(db, user_id)
