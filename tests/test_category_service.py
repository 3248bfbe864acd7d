"""
Tests for category polarity resolution.

These tests verify:
  - Seeded categories resolve to their configured type
  - Unknown categories fall back to EXPENSE
  - Charge and reversal pairs are mirror images for each polarity
  - A changed category type takes effect on the next lookup
"""

from sqlalchemy import update

from ppob_ledger.models import BalanceLogType, Category, CategoryType, Direction
from ppob_ledger.services import category_service


class TestResolvePolarity:

    async def test_seeded_categories(self, db_session, catalog):
        assert await category_service.resolve_polarity(db_session, "PULSA") is CategoryType.EXPENSE
        assert await category_service.resolve_polarity(db_session, "SETOR_TUNAI") is CategoryType.INCOME

    async def test_unknown_category_defaults_to_expense(self, db_session, catalog):
        polarity = await category_service.resolve_polarity(db_session, "TIDAK_ADA")
        assert polarity is CategoryType.EXPENSE

    async def test_type_change_is_seen_immediately(self, db_session, catalog):
        await db_session.execute(
            update(Category)
            .where(Category.name == "PULSA")
            .values(type=CategoryType.INCOME)
        )
        await db_session.commit()

        polarity = await category_service.resolve_polarity(db_session, "PULSA")
        assert polarity is CategoryType.INCOME


class TestChargeAndReversal:

    def test_expense_charge_debits(self):
        assert category_service.charge_for(CategoryType.EXPENSE) == (
            Direction.DEBIT, BalanceLogType.TRANSACTION,
        )

    def test_income_charge_credits(self):
        assert category_service.charge_for(CategoryType.INCOME) == (
            Direction.CREDIT, BalanceLogType.DEPOSIT,
        )

    def test_expense_reversal_refunds(self):
        assert category_service.reversal_for(CategoryType.EXPENSE) == (
            Direction.CREDIT, BalanceLogType.REFUND,
        )

    def test_income_reversal_withdraws(self):
        assert category_service.reversal_for(CategoryType.INCOME) == (
            Direction.DEBIT, BalanceLogType.WITHDRAWAL,
        )

    def test_reversal_inverts_charge_direction(self):
        for polarity in CategoryType:
            charge, _ = category_service.charge_for(polarity)
            reversal, _ = category_service.reversal_for(polarity)
            assert reversal is charge.inverse()
