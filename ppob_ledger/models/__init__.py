"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table when create_all() runs
  2. Other modules can import from ppob_ledger.models directly
"""

from ppob_ledger.models.user import User, UserRole  # noqa: F401
from ppob_ledger.models.category import Category, CategoryType  # noqa: F401
from ppob_ledger.models.product import Product  # noqa: F401
from ppob_ledger.models.transaction import Transaction, TransactionStatus  # noqa: F401
from ppob_ledger.models.balance_log import (  # noqa: F401
    BalanceLog,
    BalanceLogType,
    Direction,
    CREDIT_TYPES,
    DEBIT_TYPES,
)
from ppob_ledger.models.activity_log import ActivityLog  # noqa: F401
