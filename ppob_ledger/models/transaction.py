"""
Transaction model — one PPOB sale (or deposit) made by a cashier.

Lifecycle:
  PENDING   — persisted before the provider is asked to settle it
  SUCCESS   — settled; the base price has moved the owner's balance
  FAILED    — settlement failed (or an operator marked it failed); no funds
              are held by the transaction

After creation an operator may correct the status in any direction, and each
correction applies exactly one compensating balance mutation (see
services.transaction_service.correct_transaction_status).

Monetary fields are copied from the product at sale time so that later
price changes never alter historical transactions:
  - amount: selling price charged to the customer
  - base_price: supplier cost, the magnitude that moves the balance
  - fee: admin fee
  - profit: amount - base_price
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, String, DateTime, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ppob_ledger.database import Base


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("base_price > 0", name="ck_transactions_positive_base_price"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Human-facing receipt number, e.g. TRX1718000000000123
    transaction_code: Mapped[str] = mapped_column(
        String(40),
        unique=True,
        nullable=False,
        index=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"),
        nullable=False,
        index=True,
    )

    # Phone number, meter number, customer ID... depending on the product
    customer_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    base_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    profit: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )

    # Operator note on manual correction, or the reason a sale failed
    error_message: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Indexed for efficient date-range queries (reports, listing)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
