"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.auditor_service import AuditorService, AuditTrace
from ledger_kernel.services.expense_poster import ExpensePoster
from ledger_kernel.services.journal_engine import JournalEngine
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.withholding_poster import WithholdingPoster

__all__ = [
    "AccountRegistry",
    "AuditTrace",
    "AuditorService",
    "ExpensePoster",
    "JournalEngine",
    "LedgerStore",
    "SequenceService",
    "WithholdingPoster",
]
