"""
Pure domain layer.

Data transfer objects, the account-type classification, lifecycle tables,
withholding arithmetic and the posting policy.  Nothing here touches a
session or the clock.
"""

from ledger_kernel.domain.account_types import (
    StatementSection,
    normal_balance_for,
    statement_section_for,
)
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountSpec,
    ExpenseEvent,
    JournalEntrySpec,
    JournalLineSpec,
    LedgerLineSpec,
    LedgerQuery,
    PostingResult,
    ReversalResult,
    TransitionRecord,
    WithholdingRequest,
)
from ledger_kernel.domain.policy import (
    DEFAULT_POSTING_POLICY,
    PostingAccounts,
    PostingPolicy,
    WithholdingSection,
)
from ledger_kernel.domain.withholding import WithholdingFigures, derive_withholding

__all__ = [
    # Account classification
    "StatementSection",
    "normal_balance_for",
    "statement_section_for",
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # DTOs
    "AccountSpec",
    "ExpenseEvent",
    "JournalEntrySpec",
    "JournalLineSpec",
    "LedgerLineSpec",
    "LedgerQuery",
    "PostingResult",
    "ReversalResult",
    "TransitionRecord",
    "WithholdingRequest",
    # Policy
    "DEFAULT_POSTING_POLICY",
    "PostingAccounts",
    "PostingPolicy",
    "WithholdingSection",
    # Withholding
    "WithholdingFigures",
    "derive_withholding",
]
