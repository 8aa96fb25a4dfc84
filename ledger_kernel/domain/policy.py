"""
Posting policy -- the account codes and tolerances posters depend on.

Responsibility:
    Holds the handful of configurable values the journal engine and the
    specialized posters read: balance tolerance, entry-number prefix, the
    account codes used by automatic postings, and the withholding section
    table.

Architecture position:
    Kernel > Domain.  Pure data.  ``ledger_config.bridges`` builds these
    objects from YAML; the kernel never imports ``ledger_config``.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType


@dataclass(frozen=True)
class WithholdingSection:
    """One statutory section: code, description and default rate (percent)."""

    code: str
    description: str
    rate: Decimal


@dataclass(frozen=True)
class PostingAccounts:
    """Account codes used by automatic postings."""

    cash: str = "CASH"
    bank: str = "BANK"
    accounts_receivable: str = "ACCOUNTS_RECEIVABLE"
    accounts_payable: str = "ACCOUNTS_PAYABLE"
    sales: str = "SALES"
    expenses: str = "EXPENSES"
    tds_expense: str = "TDS_EXPENSE"
    tds_payable: str = "TDS_PAYABLE"


DEFAULT_WITHHOLDING_SECTIONS: tuple[WithholdingSection, ...] = (
    WithholdingSection("194A", "Interest other than on securities", Decimal("10")),
    WithholdingSection("194C", "Payment to contractors", Decimal("1")),
    WithholdingSection("194H", "Commission or brokerage", Decimal("5")),
    WithholdingSection("194I", "Rent", Decimal("10")),
    WithholdingSection("194J", "Professional or technical fees", Decimal("10")),
    WithholdingSection("194Q", "Purchase of goods", Decimal("0.1")),
)


@dataclass(frozen=True)
class PostingPolicy:
    """
    Everything configurable about how entries are numbered and posted.

    Guarantees:
        - expense_accounts maps upper-case category names to account codes;
          unmapped categories fall back to ``accounts.expenses``.
        - withholding_sections is keyed by section code.
    """

    balance_tolerance: Decimal = Decimal("0.01")
    entry_number_prefix: str = "JE"
    accounts: PostingAccounts = field(default_factory=PostingAccounts)
    expense_accounts: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    withholding_sections: Mapping[str, WithholdingSection] = field(
        default_factory=lambda: MappingProxyType(
            {s.code: s for s in DEFAULT_WITHHOLDING_SECTIONS}
        )
    )

    def expense_account_for(self, category: str) -> str:
        return self.expense_accounts.get(category.upper(), self.accounts.expenses)

    def section(self, code: str) -> WithholdingSection | None:
        return self.withholding_sections.get(code.upper())


DEFAULT_POSTING_POLICY = PostingPolicy()
