"""
ActivityLog model — who did what to which entity.

Every mutating ledger operation writes one row here, in the same database
transaction as the ledger change it describes. The back office's audit
screen reads this table.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from ppob_ledger.database import Base


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # The actor, not necessarily the owner of the affected balance
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # e.g. CREATE_TRANSACTION, TOP_UP, DELETE_BALANCE_LOG
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # TRANSACTION or BALANCE
    module: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
