"""
Transaction service — the lifecycle of a PPOB sale.

It handles:
  - Creating a sale: validation, polarity lookup, settlement, and the
    balance charge
  - Operator status corrections, each applying one compensating mutation
  - Deleting a sale, reversing its charge first if it had one
  - Listing and fetching transactions

State machine:
  PENDING -> SUCCESS | FAILED           on creation-time settlement
  any     -> any                        on operator correction
  any     -> (deleted)                  on delete

Polarity:
  Every balance move goes through category_service, resolved at the
  moment of the move. Category types can be edited after a sale, so a
  correction or delete re-resolves instead of assuming what creation did.

Balance checks:
  The check done before the transaction row is written is advisory. It
  only keeps obviously unaffordable sales out of the table. The
  authoritative check is the floor condition inside the balance mutator's
  atomic UPDATE. If a concurrent sale drains the balance in between, the
  transaction is kept as FAILED (audit trail) and InsufficientFundsError
  is raised; no ledger entry is written.
"""

import logging
import random
import time
import uuid
from datetime import datetime

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidArgumentError,
    ProductInactiveError,
    ProductNotFoundError,
    TransactionNotFoundError,
)
from ppob_ledger.models.balance_log import BalanceLog
from ppob_ledger.models.category import CategoryType
from ppob_ledger.models.product import Product
from ppob_ledger.models.transaction import Transaction, TransactionStatus
from ppob_ledger.services import activity_service, balance_service, category_service
from ppob_ledger.services.settlement import SettlementProvider, SimulatedSettlement

logger = logging.getLogger(__name__)


def _generate_transaction_code() -> str:
    """TRX + epoch milliseconds + three random digits, e.g. TRX1718000000000042."""
    return f"TRX{int(time.time() * 1000)}{random.randint(0, 999):03d}"


async def _unique_transaction_code(db: AsyncSession) -> str:
    # Retry on collision (two sales in the same millisecond)
    for _ in range(10):
        code = _generate_transaction_code()
        existing = await db.execute(
            select(Transaction.id).where(Transaction.transaction_code == code)
        )
        if existing.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Failed to generate a unique transaction code")


async def _get_product(db: AsyncSession, product_id: uuid.UUID) -> Product:
    result = await db.execute(select(Product).where(Product.id == product_id))
    product = result.scalar_one_or_none()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


async def _polarity_of(db: AsyncSession, txn: Transaction) -> CategoryType:
    result = await db.execute(
        select(Product.category).where(Product.id == txn.product_id)
    )
    category = result.scalar_one_or_none()
    if category is None:
        logger.warning(
            "Product of transaction is gone, using default polarity",
            extra={"transaction_id": str(txn.id), "product_id": str(txn.product_id)},
        )
        return category_service.DEFAULT_POLARITY
    return await category_service.resolve_polarity(db, category)


async def _fail(db: AsyncSession, txn: Transaction, reason: str) -> None:
    txn.status = TransactionStatus.FAILED
    txn.error_message = reason
    await db.flush()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

async def create_transaction(
    db: AsyncSession,
    user_id: uuid.UUID,
    product_id: uuid.UUID,
    customer_number: str,
    created_at: datetime | None = None,
    settlement: SettlementProvider | None = None,
) -> Transaction:
    """
    Sell a product from a cashier's balance (or book an INCOME product to it).

    Args:
        db: Database session.
        user_id: The cashier making the sale; also the recorded actor.
        product_id: Product being sold.
        customer_number: Phone/meter/customer number the product is for.
        created_at: Backdated sale time (defaults to now).
        settlement: Provider that settles the sale. Defaults to the
                    always-succeeding simulator.

    Returns:
        The Transaction, SUCCESS or FAILED.

    Raises:
        UserNotFoundError: The cashier does not exist.
        ProductNotFoundError: The product does not exist.
        ProductInactiveError: The product is switched off.
        InvalidArgumentError: The product has no positive base price.
        InsufficientFundsError: EXPENSE sale the balance cannot cover,
            either up front (nothing persisted) or at charge time (the
            transaction is kept as FAILED).
        ConflictError: The balance charge kept losing lock races (the
            transaction is kept as FAILED).
    """
    user = await balance_service.get_user(db, user_id)
    product = await _get_product(db, product_id)
    if not product.is_active:
        raise ProductInactiveError(product_id)
    if product.base_price <= 0:
        raise InvalidArgumentError(
            f"Product {product.code} has no positive base price and cannot be sold"
        )

    polarity = await category_service.resolve_polarity(db, product.category)

    # Advisory only: re-checked atomically when the balance is charged
    if polarity is CategoryType.EXPENSE and user.balance < product.base_price:
        raise InsufficientFundsError(
            user_id, requested=product.base_price, available=user.balance
        )

    txn = Transaction(
        transaction_code=await _unique_transaction_code(db),
        user_id=user_id,
        product_id=product.id,
        customer_number=customer_number,
        amount=product.selling_price,
        base_price=product.base_price,
        fee=product.fee,
        profit=product.selling_price - product.base_price,
        status=TransactionStatus.PENDING,
    )
    if created_at is not None:
        txn.created_at = balance_service.as_utc(created_at)
    db.add(txn)
    await db.flush()

    provider = settlement or SimulatedSettlement()
    outcome = await provider.settle(txn)

    if not outcome.success:
        await _fail(db, txn, outcome.message or "Settlement failed")
        logger.info(
            "Transaction failed at settlement",
            extra={"transaction_code": txn.transaction_code, "reason": txn.error_message},
        )
        activity_service.record_activity(
            db,
            actor_id=user_id,
            action="CREATE_TRANSACTION",
            module=activity_service.MODULE_TRANSACTION,
            entity_id=txn.id,
            details=f"Transaksi {txn.transaction_code} - {product.name} gagal: {txn.error_message}",
        )
        return txn

    direction, log_type = category_service.charge_for(polarity)
    try:
        await balance_service.apply_mutation(
            db,
            user_id=user_id,
            log_type=log_type,
            magnitude=product.base_price,
            direction=direction,
            description=f"Transaksi {product.name} - {customer_number}",
            reference_id=txn.id,
            created_at=created_at,
            enforce_floor=polarity is CategoryType.EXPENSE,
        )
    except (InsufficientFundsError, ConflictError) as exc:
        reason = (
            "insufficient balance"
            if isinstance(exc, InsufficientFundsError)
            else "balance update conflict"
        )
        await _fail(db, txn, reason)
        activity_service.record_activity(
            db,
            actor_id=user_id,
            action="CREATE_TRANSACTION",
            module=activity_service.MODULE_TRANSACTION,
            entity_id=txn.id,
            details=f"Transaksi {txn.transaction_code} - {product.name} gagal: {reason}",
        )
        raise

    txn.status = TransactionStatus.SUCCESS
    await db.flush()

    logger.info(
        "Transaction settled",
        extra={
            "transaction_code": txn.transaction_code,
            "user_id": str(user_id),
            "polarity": polarity.value,
            "base_price": txn.base_price,
        },
    )
    activity_service.record_activity(
        db,
        actor_id=user_id,
        action="CREATE_TRANSACTION",
        module=activity_service.MODULE_TRANSACTION,
        entity_id=txn.id,
        details=f"Transaksi {txn.transaction_code} - {product.name}",
    )
    return txn


# ---------------------------------------------------------------------------
# Status correction
# ---------------------------------------------------------------------------

async def correct_transaction_status(
    db: AsyncSession,
    transaction_id: uuid.UUID,
    new_status: TransactionStatus | str,
    actor_id: uuid.UUID,
    note: str | None = None,
) -> Transaction:
    """
    Operator correction of a transaction's status.

    Exactly one compensating mutation is chosen from a fixed table:

        SUCCESS or PENDING -> FAILED   reverse the charge
                                       (EXPENSE: REFUND credit,
                                        INCOME: WITHDRAWAL debit)
        FAILED -> SUCCESS              apply the charge again
                                       (EXPENSE: TRANSACTION debit, floor
                                        checked; INCOME: DEPOSIT credit)
        anything else                  no balance effect

    Raises:
        TransactionNotFoundError: The transaction does not exist.
        InvalidArgumentError: new_status is not a known status.
        InsufficientFundsError: FAILED -> SUCCESS on an EXPENSE sale the
            balance cannot cover. The status is left unchanged.
    """
    try:
        new_status = TransactionStatus(new_status)
    except ValueError:
        raise InvalidArgumentError(f"Unknown transaction status: {new_status!r}")

    txn = await get_transaction(db, transaction_id)
    old_status = txn.status

    if new_status is TransactionStatus.FAILED and old_status in (
        TransactionStatus.SUCCESS,
        TransactionStatus.PENDING,
    ):
        polarity = await _polarity_of(db, txn)
        direction, log_type = category_service.reversal_for(polarity)
        await balance_service.apply_mutation(
            db,
            user_id=txn.user_id,
            log_type=log_type,
            magnitude=txn.base_price,
            direction=direction,
            description=f"Refund transaksi gagal {txn.transaction_code}",
            reference_id=txn.id,
        )
    elif old_status is TransactionStatus.FAILED and new_status is TransactionStatus.SUCCESS:
        polarity = await _polarity_of(db, txn)
        direction, log_type = category_service.charge_for(polarity)
        await balance_service.apply_mutation(
            db,
            user_id=txn.user_id,
            log_type=log_type,
            magnitude=txn.base_price,
            direction=direction,
            description=f"Manual success {txn.transaction_code}",
            reference_id=txn.id,
            enforce_floor=polarity is CategoryType.EXPENSE,
        )

    txn.status = new_status
    if note is not None:
        txn.error_message = note
    await db.flush()

    logger.info(
        "Transaction status corrected",
        extra={
            "transaction_code": txn.transaction_code,
            "old_status": old_status.value,
            "new_status": new_status.value,
            "actor_id": str(actor_id),
        },
    )
    activity_service.record_activity(
        db,
        actor_id=actor_id,
        action="UPDATE_TRANSACTION",
        module=activity_service.MODULE_TRANSACTION,
        entity_id=txn.id,
        details=f"Update TRX {txn.transaction_code}: {old_status.value} -> {new_status.value}",
    )
    return txn


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

async def delete_transaction(
    db: AsyncSession,
    transaction_id: uuid.UUID,
    actor_id: uuid.UUID,
) -> BalanceLog | None:
    """
    Delete a transaction, reversing its charge first if it is SUCCESS.

    The original TRANSACTION/DEPOSIT entry is kept; the reversal is a new
    entry referencing the deleted transaction's id, so the ledger shows both
    the charge and its compensation.

    Returns:
        The compensating entry, or None for PENDING/FAILED transactions.

    Raises:
        TransactionNotFoundError: The transaction does not exist.
    """
    txn = await get_transaction(db, transaction_id)
    reversal = None

    if txn.status is TransactionStatus.SUCCESS:
        polarity = await _polarity_of(db, txn)
        direction, log_type = category_service.reversal_for(polarity)
        reversal = await balance_service.apply_mutation(
            db,
            user_id=txn.user_id,
            log_type=log_type,
            magnitude=txn.base_price,
            direction=direction,
            description=f"Refund hapus transaksi {txn.transaction_code}",
            reference_id=txn.id,
        )

    code, status, base_price = txn.transaction_code, txn.status, txn.base_price
    await db.delete(txn)
    await db.flush()

    details = f"Hapus TRX {code} ({status.value})"
    if reversal is not None:
        details += f". Dana {balance_service.format_rupiah(base_price)} dikembalikan."
    activity_service.record_activity(
        db,
        actor_id=actor_id,
        action="DELETE_TRANSACTION",
        module=activity_service.MODULE_TRANSACTION,
        entity_id=transaction_id,
        details=details,
    )
    return reversal


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_transaction(db: AsyncSession, transaction_id: uuid.UUID) -> Transaction:
    result = await db.execute(select(Transaction).where(Transaction.id == transaction_id))
    txn = result.scalar_one_or_none()
    if txn is None:
        raise TransactionNotFoundError(transaction_id)
    return txn


async def list_transactions(
    db: AsyncSession,
    status_filter: TransactionStatus | None = None,
    search: str | None = None,
    user_id: uuid.UUID | None = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Transaction], int]:
    """
    List transactions newest first.

    `search` matches a substring of the transaction code or customer number.
    `user_id` scopes the listing to one cashier.

    Returns:
        Tuple of (transactions on the requested page, total matching).
    """
    filters = []
    if status_filter is not None:
        filters.append(Transaction.status == status_filter)
    if user_id is not None:
        filters.append(Transaction.user_id == user_id)
    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(
                Transaction.transaction_code.like(pattern),
                Transaction.customer_number.like(pattern),
            )
        )

    result = await db.execute(
        select(Transaction)
        .where(*filters)
        .order_by(Transaction.created_at.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    total = (
        await db.execute(select(func.count()).select_from(Transaction).where(*filters))
    ).scalar()
    return list(result.scalars().all()), total
