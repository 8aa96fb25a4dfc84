"""
Lifecycle tables for journal entries and withholding records.

The services consult these maps before every status change; anything not
listed is rejected.  Terminal states map to an empty set.
"""

from ledger_kernel.models.journal import JournalEntryStatus
from ledger_kernel.models.withholding import WithholdingStatus

JOURNAL_TRANSITIONS: dict[JournalEntryStatus, frozenset[JournalEntryStatus]] = {
    JournalEntryStatus.DRAFT: frozenset({
        JournalEntryStatus.PENDING_APPROVAL, JournalEntryStatus.APPROVED,
    }),
    JournalEntryStatus.PENDING_APPROVAL: frozenset({
        JournalEntryStatus.APPROVED, JournalEntryStatus.DRAFT,
    }),
    JournalEntryStatus.APPROVED: frozenset({JournalEntryStatus.POSTED}),
    JournalEntryStatus.POSTED: frozenset({JournalEntryStatus.REVERSED}),
    JournalEntryStatus.REVERSED: frozenset(),
}

WITHHOLDING_TRANSITIONS: dict[WithholdingStatus, frozenset[WithholdingStatus]] = {
    WithholdingStatus.PENDING: frozenset({
        WithholdingStatus.DEDUCTED, WithholdingStatus.CANCELLED,
    }),
    WithholdingStatus.DEDUCTED: frozenset({
        WithholdingStatus.DEPOSITED, WithholdingStatus.CANCELLED,
    }),
    WithholdingStatus.DEPOSITED: frozenset({WithholdingStatus.RETURN_FILED}),
    WithholdingStatus.RETURN_FILED: frozenset(),
    WithholdingStatus.CANCELLED: frozenset(),
}


def can_transition_journal(
    current: JournalEntryStatus, target: JournalEntryStatus
) -> bool:
    return JournalEntryStatus(target) in JOURNAL_TRANSITIONS[JournalEntryStatus(current)]


def can_transition_withholding(
    current: WithholdingStatus, target: WithholdingStatus
) -> bool:
    return WithholdingStatus(target) in WITHHOLDING_TRANSITIONS[WithholdingStatus(current)]
