"""
BalanceLog model — the ledger of every change to a user's balance.

One row is written for every committed balance mutation, carrying the exact
balance observed before and after the change. Replaying a user's rows from
account creation reproduces User.balance.

Direction by type:
  - credit types (TOP_UP, DEPOSIT, REFUND):   balance_after = before + amount
  - debit types (TRANSACTION, WITHDRAWAL):    balance_after = before - amount
  - ADJUSTMENT: either way; the direction is read from the before/after pair

Why amount is always positive:
  Amounts are stored as positive magnitudes. The type (or, for ADJUSTMENT,
  the before/after pair) gives the direction.

reference_id is a loose link to Transaction.id (no foreign key): entries must
outlive the transaction they describe so deleting a sale keeps its history.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, String, DateTime, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ppob_ledger.database import Base


class BalanceLogType(str, enum.Enum):
    TOP_UP = "TOP_UP"
    TRANSACTION = "TRANSACTION"
    DEPOSIT = "DEPOSIT"
    REFUND = "REFUND"
    WITHDRAWAL = "WITHDRAWAL"
    ADJUSTMENT = "ADJUSTMENT"


class Direction(str, enum.Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.CREDIT else -1

    def inverse(self) -> "Direction":
        return Direction.DEBIT if self is Direction.CREDIT else Direction.CREDIT


CREDIT_TYPES = frozenset({BalanceLogType.TOP_UP, BalanceLogType.DEPOSIT, BalanceLogType.REFUND})
DEBIT_TYPES = frozenset({BalanceLogType.TRANSACTION, BalanceLogType.WITHDRAWAL})


class BalanceLog(Base):
    __tablename__ = "balance_logs"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_balance_logs_positive_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    type: Mapped[BalanceLogType] = mapped_column(
        Enum(BalanceLogType),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    reference_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    @property
    def direction(self) -> Direction:
        """Direction of this entry's effect on the balance."""
        if self.type in CREDIT_TYPES:
            return Direction.CREDIT
        if self.type in DEBIT_TYPES:
            return Direction.DEBIT
        return Direction.CREDIT if self.balance_after > self.balance_before else Direction.DEBIT

    @property
    def signed_amount(self) -> int:
        return self.direction.sign * self.amount
