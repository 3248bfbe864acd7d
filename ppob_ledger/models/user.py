"""
User model: a back-office login that also owns one running balance.

`balance` is a signed integer in Rupiah. Only balance_service writes it,
always through a single conditional UPDATE, and every change that the ledger
knows about has a matching BalanceLog row.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, String, Boolean, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column

from ppob_ledger.database import Base


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"     # back-office operator, any user's ledger
    KASIR = "KASIR"     # cashier, own balance and sales only


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), default=UserRole.KASIR, nullable=False
    )

    # Reversals and operator corrections are never floored, so this can go
    # below zero.
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Deactivated users cannot log in; their ledger stays.
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
