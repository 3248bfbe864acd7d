"""
Balance service — the single choke point for every change to User.balance.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - apply_mutation(): move a balance and write its matching ledger entry
  - Top-ups, manual adjustments, and operator edits/deletes of ledger entries
  - Ledger listing and the balance-vs-ledger integrity check

Atomicity:
  A balance change is ONE conditional UPDATE ... RETURNING statement:

      UPDATE users SET balance = balance + :delta
      WHERE id = :user_id [AND balance >= :magnitude]
      RETURNING balance

  The database performs the read-modify-write itself, so two concurrent
  debits can never both start from the same stale balance. balance_before
  and balance_after of the ledger entry are derived from the value the
  database returned, never from a balance the caller read earlier. The
  entry is flushed in the same database transaction, so the balance change
  and its entry commit (or roll back) together.

  On PostgreSQL the UPDATE takes a row lock; a concurrent writer blocks,
  then re-evaluates the floor condition against the committed balance.

Retries:
  Lock contention (SQLite "database is locked", PostgreSQL deadlocks,
  serialization failures, lock timeouts) is retried up to
  settings.MUTATION_MAX_ATTEMPTS times with a fixed delay, then surfaces as
  ConflictError. Each attempt runs in a SAVEPOINT where the dialect
  supports it; on SQLite a failed statement leaves the transaction usable,
  and pysqlite's SAVEPOINT handling would commit early, so none is used.

  Any other driver-level failure surfaces immediately as
  StorageUnavailableError.

Floors:
  Only new EXPENSE charges are balance-checked (enforce_floor=True). Credits,
  compensating reversals, and operator corrections always apply, even if
  they leave the balance negative.
"""

import asyncio
import contextlib
import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.config import settings
from ppob_ledger.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidArgumentError,
    LogNotFoundError,
    StorageUnavailableError,
    UserNotFoundError,
)
from ppob_ledger.models.balance_log import (
    BalanceLog,
    BalanceLogType,
    Direction,
    CREDIT_TYPES,
    DEBIT_TYPES,
)
from ppob_ledger.models.user import User

logger = logging.getLogger(__name__)

_LOCK_CONTENTION_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
    "could not obtain lock",
    "lock wait timeout",
)


def _is_lock_contention(exc: DBAPIError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in _LOCK_CONTENTION_MARKERS)


def _uses_savepoints(db: AsyncSession) -> bool:
    return db.get_bind().dialect.name != "sqlite"


def format_rupiah(amount: int) -> str:
    """Format an integer amount the way receipts show it: 'Rp 1.500.000'."""
    return "Rp " + f"{amount:,}".replace(",", ".")


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a caller-supplied timestamp to UTC.

    SQLite stores the wall-clock part of a datetime and drops its offset, so
    every timestamp is converted before it is written or compared. Naive
    values are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Core primitive
# ---------------------------------------------------------------------------

async def _shift_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    delta: int,
    *,
    floor: int | None = None,
    expected: int | None = None,
    entry: BalanceLog | None = None,
) -> int | None:
    """
    Atomically add `delta` to a user's balance and return the new balance.

    Args:
        floor: If set, the update only applies while balance >= floor.
        expected: If set, the update only applies while balance == expected
                  (optimistic compare-and-swap).
        entry: Ledger row to flush in the same attempt as the update.
               Its balance_before/balance_after are filled in from the
               returned balance.

    Returns:
        The balance after the update, or None if no row matched (unknown
        user, floor not met, or compare-and-swap lost).

    Raises:
        ConflictError: Lock contention outlasted the retry budget.
        StorageUnavailableError: The database failed for any other reason.
    """
    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(balance=User.balance + delta, updated_at=datetime.now(timezone.utc))
        .returning(User.balance)
        .execution_options(synchronize_session="fetch")
    )
    if floor is not None:
        stmt = stmt.where(User.balance >= floor)
    if expected is not None:
        stmt = stmt.where(User.balance == expected)

    savepoints = _uses_savepoints(db)
    attempts = max(1, settings.MUTATION_MAX_ATTEMPTS)

    for attempt in range(1, attempts + 1):
        balance_after: int | None = None
        try:
            scope = db.begin_nested() if savepoints else contextlib.nullcontext()
            async with scope:
                result = await db.execute(stmt)
                balance_after = result.scalar_one_or_none()
                if balance_after is not None and entry is not None:
                    entry.balance_before = balance_after - delta
                    entry.balance_after = balance_after
                    db.add(entry)
                    await db.flush()
            return balance_after
        except DBAPIError as exc:
            if not _is_lock_contention(exc):
                if isinstance(exc, (OperationalError, InterfaceError)):
                    raise StorageUnavailableError(
                        "Ledger storage failed while updating a balance"
                    ) from exc
                raise
            if balance_after is not None and not savepoints:
                # The UPDATE already landed and cannot be rolled back on its
                # own; retrying would apply it twice.
                raise StorageUnavailableError(
                    "Ledger entry could not be written after a balance update"
                ) from exc
            if attempt == attempts:
                logger.error(
                    "Balance update abandoned after lock contention",
                    extra={"user_id": str(user_id), "attempts": attempt},
                )
                raise ConflictError(user_id, attempt) from exc
            logger.warning(
                "Balance update hit lock contention, retrying",
                extra={"user_id": str(user_id), "attempt": attempt},
            )
            await asyncio.sleep(settings.MUTATION_RETRY_DELAY_MS / 1000)

    return None  # pragma: no cover


async def _current_balance(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(select(User.balance).where(User.id == user_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise UserNotFoundError(user_id)
    return balance


async def apply_mutation(
    db: AsyncSession,
    user_id: uuid.UUID,
    log_type: BalanceLogType,
    magnitude: int,
    direction: Direction,
    description: str | None = None,
    reference_id: uuid.UUID | None = None,
    created_at: datetime | None = None,
    enforce_floor: bool = False,
    expected_balance: int | None = None,
) -> BalanceLog:
    """
    Move a user's balance and write exactly one matching ledger entry.

    Args:
        db: Database session.
        user_id: Owner of the balance.
        log_type: Ledger entry type. Must agree with `direction` unless it
                  is ADJUSTMENT, which may go either way.
        magnitude: Positive amount to move.
        direction: CREDIT adds to the balance, DEBIT subtracts.
        description: Free-text ledger description.
        reference_id: Transaction this entry belongs to, if any.
        created_at: Backdated timestamp for the entry (defaults to now).
        enforce_floor: Reject a debit that would leave the balance negative.
        expected_balance: Only apply if the balance still equals this value.

    Returns:
        The flushed BalanceLog, whose balance_before is the balance the
        database actually held. Callers must not assume their own earlier
        read is still current.

    Raises:
        InvalidArgumentError: magnitude <= 0, or type/direction disagree.
        UserNotFoundError: The user does not exist.
        InsufficientFundsError: enforce_floor and the balance is too low.
                                Nothing is written.
        ConflictError: Lock races (or a lost compare-and-swap) outlasted
                       the retry budget.
    """
    if magnitude <= 0:
        raise InvalidArgumentError(f"Mutation amount must be positive, got {magnitude}")
    if log_type in CREDIT_TYPES and direction is not Direction.CREDIT:
        raise InvalidArgumentError(f"{log_type.value} entries can only credit a balance")
    if log_type in DEBIT_TYPES and direction is not Direction.DEBIT:
        raise InvalidArgumentError(f"{log_type.value} entries can only debit a balance")

    entry = BalanceLog(
        user_id=user_id,
        type=log_type,
        amount=magnitude,
        description=description,
        reference_id=reference_id,
    )
    if created_at is not None:
        entry.created_at = as_utc(created_at)

    floor = magnitude if enforce_floor and direction is Direction.DEBIT else None
    balance_after = await _shift_balance(
        db,
        user_id,
        direction.sign * magnitude,
        floor=floor,
        expected=expected_balance,
        entry=entry,
    )

    if balance_after is None:
        available = await _current_balance(db, user_id)
        if floor is not None and available < magnitude:
            logger.info(
                "Debit rejected: insufficient balance",
                extra={
                    "user_id": str(user_id),
                    "log_type": log_type.value,
                    "magnitude": magnitude,
                    "available": available,
                },
            )
            raise InsufficientFundsError(user_id, requested=magnitude, available=available)
        # Only a lost compare-and-swap gets here
        raise ConflictError(user_id, 1)

    logger.info(
        "Balance mutation applied",
        extra={
            "user_id": str(user_id),
            "log_type": log_type.value,
            "direction": direction.value,
            "magnitude": magnitude,
            "balance_before": entry.balance_before,
            "balance_after": entry.balance_after,
            "reference_id": str(reference_id) if reference_id else None,
        },
    )
    return entry


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(user_id)
    return user


async def get_user_balance(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Current balance of a user, read straight from the database."""
    return await _current_balance(db, user_id)


async def get_balance_log(db: AsyncSession, log_id: uuid.UUID) -> BalanceLog:
    result = await db.execute(select(BalanceLog).where(BalanceLog.id == log_id))
    log = result.scalar_one_or_none()
    if log is None:
        raise LogNotFoundError(log_id)
    return log


def _signed_amount_expr():
    return case(
        (BalanceLog.type.in_(list(CREDIT_TYPES)), BalanceLog.amount),
        (BalanceLog.type.in_(list(DEBIT_TYPES)), -BalanceLog.amount),
        (BalanceLog.balance_after > BalanceLog.balance_before, BalanceLog.amount),
        else_=-BalanceLog.amount,
    )


async def compute_balance_from_logs(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Replay a user's ledger: the signed sum of all their entries."""
    result = await db.execute(
        select(func.coalesce(func.sum(_signed_amount_expr()), 0))
        .where(BalanceLog.user_id == user_id)
    )
    return result.scalar()


async def verify_user_balance(db: AsyncSession, user_id: uuid.UUID) -> dict:
    """
    Compare the stored balance with the balance replayed from the ledger.

    A mismatch means the ledger lost an entry without its balance effect,
    which only an operator's history-only log delete is allowed to do.

    Returns:
        Dict with user_id, balance, computed_balance, match.
    """
    balance = await _current_balance(db, user_id)
    computed = await compute_balance_from_logs(db, user_id)
    return {
        "user_id": user_id,
        "balance": balance,
        "computed_balance": computed,
        "match": balance == computed,
    }


async def list_balance_logs(
    db: AsyncSession,
    user_id: uuid.UUID | None = None,
    log_type: BalanceLogType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[BalanceLog], int, int]:
    """
    List ledger entries, newest first, with optional filters.

    Returns:
        Tuple of (entries on the requested page, total matching entries,
        matching entries created today in UTC).
    """
    filters = []
    if user_id is not None:
        filters.append(BalanceLog.user_id == user_id)
    if log_type is not None:
        filters.append(BalanceLog.type == log_type)
    if start is not None:
        filters.append(BalanceLog.created_at >= as_utc(start))
    if end is not None:
        filters.append(BalanceLog.created_at <= as_utc(end))

    query = (
        select(BalanceLog)
        .where(*filters)
        .order_by(BalanceLog.created_at.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    entries = list((await db.execute(query)).scalars().all())

    total = (
        await db.execute(select(func.count()).select_from(BalanceLog).where(*filters))
    ).scalar()

    today_start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    today_count = (
        await db.execute(
            select(func.count())
            .select_from(BalanceLog)
            .where(*filters)
            .where(BalanceLog.created_at >= today_start)
            .where(BalanceLog.created_at < today_start + timedelta(days=1))
        )
    ).scalar()

    return entries, total, today_count


# ---------------------------------------------------------------------------
# Operator corrections
# ---------------------------------------------------------------------------

async def top_up(
    db: AsyncSession,
    user_id: uuid.UUID,
    magnitude: int,
    description: str | None = None,
    created_at: datetime | None = None,
) -> BalanceLog:
    """Credit a user's balance. Always allowed; there is no ceiling."""
    return await apply_mutation(
        db,
        user_id=user_id,
        log_type=BalanceLogType.TOP_UP,
        magnitude=magnitude,
        direction=Direction.CREDIT,
        description=description or f"Top up saldo {format_rupiah(magnitude)}",
        created_at=created_at,
    )


async def adjust_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    new_balance: int,
    description: str | None = None,
) -> BalanceLog | None:
    """
    Move a user's balance to an exact value with one ADJUSTMENT entry.

    The delta is computed against the balance read just before the write and
    applied with compare-and-swap, so a concurrent mutation cannot make the
    adjustment overshoot; on a lost race the delta is recomputed.

    Returns:
        The ADJUSTMENT entry, or None if the balance already had that value.
    """
    attempts = max(1, settings.MUTATION_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        current = await _current_balance(db, user_id)
        delta = new_balance - current
        if delta == 0:
            return None
        direction = Direction.CREDIT if delta > 0 else Direction.DEBIT
        try:
            return await apply_mutation(
                db,
                user_id=user_id,
                log_type=BalanceLogType.ADJUSTMENT,
                magnitude=abs(delta),
                direction=direction,
                description=description
                or f"Penyesuaian saldo {format_rupiah(current)} -> {format_rupiah(new_balance)}",
                expected_balance=current,
            )
        except ConflictError:
            if attempt == attempts:
                raise ConflictError(user_id, attempt)
            await asyncio.sleep(settings.MUTATION_RETRY_DELAY_MS / 1000)
    return None  # pragma: no cover


async def edit_balance_log(
    db: AsyncSession,
    log_id: uuid.UUID,
    new_magnitude: int | None = None,
    new_description: str | None = None,
    new_created_at: datetime | None = None,
) -> tuple[BalanceLog, int]:
    """
    Rewrite a ledger entry's amount and carry the difference into the balance.

    This is the one place a ledger row is rewritten instead of appended to.
    The difference between the new and old amount is applied to the user's
    balance in the entry's own direction (atomic, no floor), and the entry's
    balance_after moves by the same signed delta, so the entry stays
    internally consistent and the balance still equals the ledger sum.

    Returns:
        Tuple of (updated entry, signed balance adjustment applied).

    Raises:
        LogNotFoundError: The entry does not exist.
        InvalidArgumentError: new_magnitude <= 0.
    """
    log = await get_balance_log(db, log_id)
    adjustment = 0

    if new_magnitude is not None and new_magnitude != log.amount:
        if new_magnitude <= 0:
            raise InvalidArgumentError(f"Ledger amount must be positive, got {new_magnitude}")
        adjustment = log.direction.sign * (new_magnitude - log.amount)
        balance_after = await _shift_balance(db, log.user_id, adjustment)
        if balance_after is None:
            raise UserNotFoundError(log.user_id)

        logger.warning(
            "Ledger entry amount rewritten",
            extra={
                "log_id": str(log.id),
                "user_id": str(log.user_id),
                "old_amount": log.amount,
                "new_amount": new_magnitude,
                "adjustment": adjustment,
                "balance_after": balance_after,
            },
        )
        log.balance_after = log.balance_after + adjustment
        log.amount = new_magnitude

    if new_description is not None:
        log.description = new_description
    if new_created_at is not None:
        log.created_at = as_utc(new_created_at)

    await db.flush()
    return log, adjustment


async def delete_balance_log_reversing(
    db: AsyncSession,
    log_id: uuid.UUID,
) -> tuple[BalanceLog, int]:
    """
    Remove a ledger entry and undo its effect on the balance.

    The entry's signed amount is taken back out of the balance (atomic, no
    floor) before the row is removed, so the balance still equals the sum of
    the remaining entries.

    Returns:
        Tuple of (the removed entry, signed balance adjustment applied).

    Raises:
        LogNotFoundError: The entry does not exist.
    """
    log = await get_balance_log(db, log_id)
    adjustment = -log.signed_amount
    balance_after = await _shift_balance(db, log.user_id, adjustment)
    if balance_after is None:
        raise UserNotFoundError(log.user_id)
    logger.info(
        "Ledger entry deleted with balance reversal",
        extra={
            "log_id": str(log.id),
            "user_id": str(log.user_id),
            "adjustment": adjustment,
            "balance_after": balance_after,
        },
    )

    await db.delete(log)
    await db.flush()
    return log, adjustment


async def delete_balance_log_history_only(db: AsyncSession, log_id: uuid.UUID) -> BalanceLog:
    """
    Remove a ledger entry and leave the balance alone.

    The balance will no longer match the replayed ledger; callers must warn
    the operator.
    """
    log = await get_balance_log(db, log_id)
    logger.warning(
        "Ledger entry deleted without balance reversal",
        extra={"log_id": str(log.id), "user_id": str(log.user_id), "amount": log.amount},
    )

    await db.delete(log)
    await db.flush()
    return log
