"""
Unit tests for account-type dispatch.

Every AccountType must map to exactly one normal balance side and one
statement section.
"""

import pytest

from ledger_kernel.domain.account_types import (
    StatementSection,
    is_balance_sheet_section,
    normal_balance_for,
    statement_section_for,
)
from ledger_kernel.models.account import AccountType, NormalBalance


class TestNormalBalance:

    @pytest.mark.parametrize(
        "account_type",
        [
            AccountType.ASSET,
            AccountType.EXPENSE,
            AccountType.COST_OF_GOODS_SOLD,
            AccountType.OTHER_EXPENSE,
        ],
    )
    def test_debit_normal(self, account_type):
        assert normal_balance_for(account_type) == NormalBalance.DEBIT

    @pytest.mark.parametrize(
        "account_type",
        [
            AccountType.LIABILITY,
            AccountType.EQUITY,
            AccountType.REVENUE,
            AccountType.OTHER_INCOME,
        ],
    )
    def test_credit_normal(self, account_type):
        assert normal_balance_for(account_type) == NormalBalance.CREDIT

    def test_accepts_string_value(self):
        assert normal_balance_for("revenue") == NormalBalance.CREDIT

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            normal_balance_for("suspense")


class TestStatementSection:

    def test_every_type_has_a_section(self):
        for account_type in AccountType:
            assert isinstance(statement_section_for(account_type), StatementSection)

    def test_income_types(self):
        assert statement_section_for(AccountType.REVENUE) == StatementSection.INCOME
        assert statement_section_for(AccountType.OTHER_INCOME) == StatementSection.INCOME

    def test_expense_types(self):
        for account_type in (
            AccountType.EXPENSE,
            AccountType.COST_OF_GOODS_SOLD,
            AccountType.OTHER_EXPENSE,
        ):
            assert statement_section_for(account_type) == StatementSection.EXPENSES

    def test_balance_sheet_sections(self):
        assert is_balance_sheet_section(StatementSection.ASSETS)
        assert is_balance_sheet_section(StatementSection.LIABILITIES)
        assert is_balance_sheet_section(StatementSection.EQUITY)
        assert not is_balance_sheet_section(StatementSection.INCOME)
        assert not is_balance_sheet_section(StatementSection.EXPENSES)
