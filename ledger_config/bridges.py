"""
Config -> Kernel bridges.

Converts a ``LedgerConfig`` into the kernel's ``PostingPolicy``.  These
live in ledger_config (the producer) because the kernel must never import
ledger_config.

Usage:
    from ledger_config import get_active_config
    from ledger_config.bridges import build_posting_policy

    policy = build_posting_policy(get_active_config())
    JournalEngine(session, clock, policy=policy)
"""

from __future__ import annotations

from types import MappingProxyType

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.policy import (
    PostingAccounts,
    PostingPolicy,
    WithholdingSection,
)


def build_posting_accounts(config: LedgerConfig) -> PostingAccounts:
    accounts = config.posting_accounts
    return PostingAccounts(
        cash=accounts.cash,
        bank=accounts.bank,
        accounts_receivable=accounts.accounts_receivable,
        accounts_payable=accounts.accounts_payable,
        sales=accounts.sales,
        expenses=accounts.expenses,
        tds_expense=accounts.tds_expense,
        tds_payable=accounts.tds_payable,
    )


def build_withholding_sections(config: LedgerConfig) -> dict[str, WithholdingSection]:
    return {
        s.code: WithholdingSection(code=s.code, description=s.description, rate=s.rate)
        for s in config.withholding.sections
    }


def build_posting_policy(config: LedgerConfig) -> PostingPolicy:
    """Build the kernel posting policy from a loaded configuration."""
    return PostingPolicy(
        balance_tolerance=config.balance_tolerance,
        entry_number_prefix=config.entry_number_prefix,
        accounts=build_posting_accounts(config),
        expense_accounts=MappingProxyType(
            {e.category: e.account_code for e in config.expense_accounts}
        ),
        withholding_sections=MappingProxyType(build_withholding_sections(config)),
    )
