"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.balance_calculator import (
    AccountBalance,
    BalanceCalculator,
    BalanceSheetReport,
    FinancialDashboard,
    ProfitAndLossReport,
    ReportSection,
    TrialBalanceLine,
    TrialBalanceReport,
)
from ledger_kernel.selectors.journal_selector import (
    JournalEntryDTO,
    JournalLineDTO,
    JournalSelector,
)
from ledger_kernel.selectors.ledger_selector import AccountTotals, LedgerSelector
from ledger_kernel.selectors.withholding_selector import (
    WithholdingSelector,
    WithholdingSummary,
)

__all__ = [
    "AccountBalance",
    "AccountTotals",
    "BalanceCalculator",
    "BalanceSheetReport",
    "FinancialDashboard",
    "JournalEntryDTO",
    "JournalLineDTO",
    "JournalSelector",
    "LedgerSelector",
    "ProfitAndLossReport",
    "ReportSection",
    "TrialBalanceLine",
    "TrialBalanceReport",
    "WithholdingSelector",
    "WithholdingSummary",
]
