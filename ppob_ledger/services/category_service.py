"""
Category service — resolves a product category to a balance polarity.

Polarity answers one question: does a SUCCESS transaction against this
category credit or debit its owner's balance?

  INCOME  -> credit (DEPOSIT entry), never balance-checked
  EXPENSE -> debit (TRANSACTION entry), requires balance >= base price

Unknown categories resolve to EXPENSE so that legacy or unseeded product
categories stay sellable.

Category types can be edited at any time, so callers resolve polarity at
the moment they mutate a balance (creation, status correction, deletion)
rather than caching it on the transaction.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.exceptions import StorageUnavailableError
from ppob_ledger.models.balance_log import BalanceLogType, Direction
from ppob_ledger.models.category import Category, CategoryType

logger = logging.getLogger(__name__)

DEFAULT_POLARITY = CategoryType.EXPENSE


async def resolve_polarity(db: AsyncSession, category_name: str) -> CategoryType:
    """
    Look up the polarity of a category by name.

    Returns:
        The category's type, or EXPENSE when no category has that name.

    Raises:
        StorageUnavailableError: If the lookup itself fails.
    """
    try:
        result = await db.execute(
            select(Category.type).where(Category.name == category_name)
        )
    except (OperationalError, InterfaceError) as exc:
        raise StorageUnavailableError(
            f"Could not resolve category {category_name!r}: storage unavailable"
        ) from exc

    category_type = result.scalar_one_or_none()
    if category_type is None:
        logger.info(
            "Unknown category, using default polarity",
            extra={"category": category_name, "polarity": DEFAULT_POLARITY.value},
        )
        return DEFAULT_POLARITY
    return category_type


def charge_for(polarity: CategoryType) -> tuple[Direction, BalanceLogType]:
    """Direction and entry type that apply a transaction's charge."""
    if polarity is CategoryType.INCOME:
        return Direction.CREDIT, BalanceLogType.DEPOSIT
    return Direction.DEBIT, BalanceLogType.TRANSACTION


def reversal_for(polarity: CategoryType) -> tuple[Direction, BalanceLogType]:
    """Direction and entry type that undo a transaction's charge."""
    direction = charge_for(polarity)[0].inverse()
    if polarity is CategoryType.INCOME:
        return direction, BalanceLogType.WITHDRAWAL
    return direction, BalanceLogType.REFUND
