"""
LedgerConfig schema.

The human-authored source artifact for ledger configuration.  YAML is
parsed into these types by the loader; ``bridges`` turns them into the
kernel's ``PostingPolicy``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Posting accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostingAccountsDef:
    """Account codes used by automatic postings."""

    cash: str
    bank: str
    accounts_receivable: str
    accounts_payable: str
    sales: str
    expenses: str
    tds_expense: str
    tds_payable: str


@dataclass(frozen=True)
class ExpenseAccountDef:
    """Maps an expense category to the account it debits."""

    category: str
    account_code: str


# ---------------------------------------------------------------------------
# Withholding
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WithholdingSectionDef:
    """A statutory withholding section and its default rate in percent."""

    code: str
    description: str
    rate: Decimal


@dataclass(frozen=True)
class WithholdingConfig:
    sections: tuple[WithholdingSectionDef, ...] = ()

    def section_codes(self) -> tuple[str, ...]:
        return tuple(s.code for s in self.sections)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """
    Complete ledger configuration.

    Guarantees:
        - balance_tolerance is non-negative.
        - Section codes and expense categories are unique and upper-case.
    """

    config_id: str
    version: int
    balance_tolerance: Decimal
    entry_number_prefix: str
    posting_accounts: PostingAccountsDef
    expense_accounts: tuple[ExpenseAccountDef, ...] = ()
    withholding: WithholdingConfig = field(default_factory=WithholdingConfig)
    source_path: str | None = None
