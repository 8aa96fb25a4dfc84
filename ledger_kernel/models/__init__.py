"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import (
    MAX_ACCOUNT_LEVEL,
    Account,
    AccountSubtype,
    AccountType,
    NormalBalance,
)
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalEntryType,
    JournalLine,
)
from ledger_kernel.models.ledger import (
    BALANCE_BEARING_STATUSES,
    LedgerLine,
    LedgerLineStatus,
    PaymentMethod,
    TransactionType,
)
from ledger_kernel.models.withholding import (
    ReturnQuarter,
    SourceTransactionType,
    WithholdingRecord,
    WithholdingStatus,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "AccountSubtype",
    "NormalBalance",
    "MAX_ACCOUNT_LEVEL",
    "AuditEvent",
    "AuditAction",
    "JournalEntry",
    "JournalLine",
    "JournalEntryStatus",
    "JournalEntryType",
    "LedgerLine",
    "LedgerLineStatus",
    "TransactionType",
    "PaymentMethod",
    "BALANCE_BEARING_STATUSES",
    "WithholdingRecord",
    "WithholdingStatus",
    "SourceTransactionType",
    "ReturnQuarter",
    "SequenceCounter",
]
