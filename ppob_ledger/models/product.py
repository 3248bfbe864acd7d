"""
Product model — a sellable PPOB item (pulsa, PLN token, e-wallet top-up...).

Products are maintained by the catalog screens of the back office; the
ledger only reads them. All prices are integers in Rupiah:

  - base_price: what the supplier charges; this is what moves the balance
  - selling_price: what the customer pays at the counter
  - fee: admin fee shown on the receipt
"""

import uuid

from sqlalchemy import BigInteger, String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from ppob_ledger.database import Base


class Product(Base):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Category *name*, resolved against the categories table at mutation time.
    # Deliberately not a foreign key: legacy products may name a category that
    # was never seeded, which resolves to EXPENSE.
    category: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    base_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    selling_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
