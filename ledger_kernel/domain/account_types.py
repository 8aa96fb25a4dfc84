"""
Account-type dispatch.

Every report and balance orientation decision goes through the two
functions below.  Both use exhaustive ``match`` statements over the closed
AccountType enumeration; adding a member without extending them raises
``assert_never`` under a type checker and AssertionError at runtime.
"""

from enum import Enum
from typing import assert_never

from ledger_kernel.models.account import AccountType, NormalBalance


class StatementSection(str, Enum):
    """Where an account's balance appears in the financial statements."""

    ASSETS = "assets"
    LIABILITIES = "liabilities"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSES = "expenses"


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    """Side on which a balance of this account type is naturally positive."""
    account_type = AccountType(account_type)
    match account_type:
        case (
            AccountType.ASSET
            | AccountType.EXPENSE
            | AccountType.COST_OF_GOODS_SOLD
            | AccountType.OTHER_EXPENSE
        ):
            return NormalBalance.DEBIT
        case (
            AccountType.LIABILITY
            | AccountType.EQUITY
            | AccountType.REVENUE
            | AccountType.OTHER_INCOME
        ):
            return NormalBalance.CREDIT
        case _:
            assert_never(account_type)


def statement_section_for(account_type: AccountType | str) -> StatementSection:
    account_type = AccountType(account_type)
    match account_type:
        case AccountType.ASSET:
            return StatementSection.ASSETS
        case AccountType.LIABILITY:
            return StatementSection.LIABILITIES
        case AccountType.EQUITY:
            return StatementSection.EQUITY
        case AccountType.REVENUE | AccountType.OTHER_INCOME:
            return StatementSection.INCOME
        case (
            AccountType.EXPENSE
            | AccountType.COST_OF_GOODS_SOLD
            | AccountType.OTHER_EXPENSE
        ):
            return StatementSection.EXPENSES
        case _:
            assert_never(account_type)


def is_balance_sheet_section(section: StatementSection) -> bool:
    return section in (
        StatementSection.ASSETS,
        StatementSection.LIABILITIES,
        StatementSection.EQUITY,
    )
