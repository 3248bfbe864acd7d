"""
Category model — product classification that decides balance polarity.

A product's category name is looked up here when a transaction is priced
against a user's balance:

  - EXPENSE: selling the product spends the cashier's balance
    (PULSA, PLN_TOKEN, E_WALLET, ...). This is the default.
  - INCOME: the product brings money in (e.g. a cash deposit counter
    service), so the base price is credited instead.

The type can be changed by an operator after transactions exist, which is
why the ledger services re-resolve it at every mutation instead of storing
it on the transaction.
"""

import enum
import uuid

from sqlalchemy import String, Boolean, Enum
from sqlalchemy.orm import Mapped, mapped_column

from ppob_ledger.database import Base


class CategoryType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Matched against Product.category (e.g. "PULSA", "PLN_TOKEN")
    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    type: Mapped[CategoryType] = mapped_column(
        Enum(CategoryType),
        default=CategoryType.EXPENSE,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
