"""
ORM-level immutability enforcement.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE statements reach the database.
The listeners below inspect attribute history and raise
ImmutabilityViolationError when a protected record would change:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The flush aborts and the database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When immutable                   | Still allowed
------------------|----------------------------------|---------------------------
LedgerLine        | status CONFIRMED/REVERSED/CANCELLED | CONFIRMED -> REVERSED
                  | delete: always                   |   with reversal_reason
JournalEntry      | status POSTED                    | POSTED -> REVERSED
                  | status REVERSED                  | nothing
JournalLine       | parent POSTED or REVERSED        | nothing
AuditEvent        | always                           | nothing
Account           | account_type once ledger lines   | name, flags, is_active
                  | reference it; delete likewise    |
WithholdingRecord | financial fields once DEPOSITED  | challan/return fields

updated_at, updated_by_id and the optimistic ``version`` column are audit
metadata and are never blocked.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect, text
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id", "version"})

# Fields a CONFIRMED ledger line may change while being reversed
LEDGER_LINE_REVERSAL_FIELDS = frozenset({"status", "reversal_reason"})

# Fields a POSTED journal entry may change while being reversed
JOURNAL_ENTRY_REVERSAL_FIELDS = frozenset({"status", "reversal_reason"})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            "reason": reason,
            **extra,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _previous_value(target, field: str):
    """Value of ``field`` as it stood before this flush."""
    history = get_history(target, field)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, field)


def _changed_fields(target, ignore: frozenset[str] = AUDIT_METADATA_FIELDS) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in ignore and attr.history.has_changes()
    ]


# =============================================================================
# Ledger lines
# =============================================================================


def _check_ledger_line_immutability(mapper, connection, target):
    """
    Amounts never change once a line carries balance.

    A CONFIRMED line may move to REVERSED (and record the reason); every
    other change to a CONFIRMED, REVERSED or CANCELLED line is blocked.
    """
    from ledger_kernel.models.ledger import LedgerLine, LedgerLineStatus

    if not isinstance(target, LedgerLine):
        return

    old_status = LedgerLineStatus(_previous_value(target, "status"))
    if old_status == LedgerLineStatus.PENDING:
        return

    changed = _changed_fields(target)
    if not changed:
        return

    if old_status == LedgerLineStatus.CONFIRMED:
        new_status = LedgerLineStatus(target.status)
        if new_status == LedgerLineStatus.REVERSED and set(changed) <= LEDGER_LINE_REVERSAL_FIELDS:
            return

    raise _blocked(
        "LedgerLine",
        target.transaction_id,
        "UPDATE",
        f"Cannot modify {changed} on {old_status.value} ledger line",
        fields=changed,
    )


def _check_ledger_line_delete(mapper, connection, target):
    from ledger_kernel.models.ledger import LedgerLine

    if not isinstance(target, LedgerLine):
        return

    raise _blocked(
        "LedgerLine",
        target.transaction_id,
        "DELETE",
        "Ledger lines are append-only and cannot be deleted",
    )


# =============================================================================
# Journal entries and lines
# =============================================================================


def _check_journal_entry_immutability(mapper, connection, target):
    """
    Prevent updates to posted or reversed JournalEntry records.

    The posting workflow itself sets status=POSTED, so the check looks at
    the status as it stood BEFORE this flush:
        - was POSTED:   only status -> REVERSED plus reversal_reason
        - was REVERSED: nothing
    """
    from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus

    if not isinstance(target, JournalEntry):
        return

    old_status = JournalEntryStatus(_previous_value(target, "status"))
    if old_status not in (JournalEntryStatus.POSTED, JournalEntryStatus.REVERSED):
        return

    changed = _changed_fields(target)
    if not changed:
        return

    if (
        old_status == JournalEntryStatus.POSTED
        and JournalEntryStatus(target.status) == JournalEntryStatus.REVERSED
        and set(changed) <= JOURNAL_ENTRY_REVERSAL_FIELDS
    ):
        return

    raise _blocked(
        "JournalEntry",
        target.entry_number,
        "UPDATE",
        f"Cannot modify {changed} on {old_status.value} journal entry",
        fields=changed,
    )


def _check_journal_entry_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus

    if not isinstance(target, JournalEntry):
        return

    if JournalEntryStatus(target.status) in (
        JournalEntryStatus.POSTED,
        JournalEntryStatus.REVERSED,
    ):
        raise _blocked(
            "JournalEntry",
            target.entry_number,
            "DELETE",
            "Posted journal entries cannot be deleted",
        )


def _parent_is_final(target) -> bool:
    from ledger_kernel.models.journal import JournalEntryStatus

    return target.entry is not None and JournalEntryStatus(target.entry.status) in (
        JournalEntryStatus.POSTED,
        JournalEntryStatus.REVERSED,
    )


def _check_journal_line_immutability(mapper, connection, target):
    from ledger_kernel.models.journal import JournalLine

    if not isinstance(target, JournalLine):
        return

    if _parent_is_final(target) and _changed_fields(target):
        raise _blocked(
            "JournalLine",
            str(target.id),
            "UPDATE",
            "Journal lines cannot be modified after the entry is posted",
        )


def _check_journal_line_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalLine

    if not isinstance(target, JournalLine):
        return

    if _parent_is_final(target):
        raise _blocked(
            "JournalLine",
            str(target.id),
            "DELETE",
            "Journal lines cannot be deleted after the entry is posted",
        )


# =============================================================================
# Audit events
# =============================================================================


def _check_audit_event_immutability(mapper, connection, target):
    from ledger_kernel.models.audit_event import AuditEvent

    if not isinstance(target, AuditEvent):
        return

    raise _blocked(
        "AuditEvent",
        str(target.seq),
        "UPDATE",
        "Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    from ledger_kernel.models.audit_event import AuditEvent

    if not isinstance(target, AuditEvent):
        return

    raise _blocked(
        "AuditEvent",
        str(target.seq),
        "DELETE",
        "Audit events cannot be deleted",
    )


# =============================================================================
# Accounts
# =============================================================================
#
# account_type decides the normal balance and statement section of every
# historical line.  It is locked as soon as one ledger line references the
# account.  Display fields (name, description, flags) stay editable.
# =============================================================================

ACCOUNT_STRUCTURAL_FIELDS = frozenset({"account_type", "code"})


def _account_has_ledger_lines(connection, account_id: str) -> bool:
    result = connection.execute(
        text(
            "SELECT EXISTS (SELECT 1 FROM ledger_lines WHERE account_id = :account_id)"
        ),
        {"account_id": account_id},
    )
    return bool(result.scalar())


def _check_account_structural_immutability(mapper, connection, target):
    from ledger_kernel.models.account import Account

    if not isinstance(target, Account):
        return

    changed = [
        field for field in sorted(ACCOUNT_STRUCTURAL_FIELDS)
        if get_history(target, field).has_changes()
    ]
    if not changed:
        return

    if _account_has_ledger_lines(connection, str(target.id)):
        raise _blocked(
            "Account",
            target.code,
            "UPDATE",
            f"Cannot modify {changed} on an account with ledger lines",
            fields=changed,
        )


def _check_account_deletion_before_flush(session, flush_context, instances):
    """
    Accounts with ledger history are deactivated, never deleted.

    Runs in before_flush because mapper-level delete events fire after the
    flush plan is fixed.
    """
    from ledger_kernel.models.account import Account

    for obj in list(session.deleted):
        if not isinstance(obj, Account):
            continue
        with session.no_autoflush:
            has_lines = _account_has_ledger_lines(session.connection(), str(obj.id))
        if has_lines:
            raise _blocked(
                "Account",
                obj.code,
                "DELETE",
                "Accounts with ledger history cannot be deleted; deactivate instead",
            )


# =============================================================================
# Withholding records
# =============================================================================


def _check_withholding_immutability(mapper, connection, target):
    from ledger_kernel.models.withholding import (
        WITHHOLDING_FINANCIAL_FIELDS,
        WithholdingRecord,
        WithholdingStatus,
    )

    if not isinstance(target, WithholdingRecord):
        return

    old_status = WithholdingStatus(_previous_value(target, "status"))
    if old_status not in (WithholdingStatus.DEPOSITED, WithholdingStatus.RETURN_FILED):
        return

    changed = [
        field for field in sorted(WITHHOLDING_FINANCIAL_FIELDS)
        if get_history(target, field).has_changes()
    ]
    if changed:
        raise _blocked(
            "WithholdingRecord",
            target.tds_number,
            "UPDATE",
            f"Cannot modify {changed} on a deposited withholding record",
            fields=changed,
        )


def _check_withholding_delete(mapper, connection, target):
    from ledger_kernel.models.withholding import WithholdingRecord, WithholdingStatus

    if not isinstance(target, WithholdingRecord):
        return

    if WithholdingStatus(target.status) != WithholdingStatus.PENDING:
        raise _blocked(
            "WithholdingRecord",
            target.tds_number,
            "DELETE",
            "Withholding records with a posting cannot be deleted",
        )


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.audit_event import AuditEvent
    from ledger_kernel.models.journal import JournalEntry, JournalLine
    from ledger_kernel.models.ledger import LedgerLine
    from ledger_kernel.models.withholding import WithholdingRecord

    return (
        (Session, "before_flush", _check_account_deletion_before_flush),
        (LedgerLine, "before_update", _check_ledger_line_immutability),
        (LedgerLine, "before_delete", _check_ledger_line_delete),
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_immutability),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (Account, "before_update", _check_account_structural_immutability),
        (WithholdingRecord, "before_update", _check_withholding_immutability),
        (WithholdingRecord, "before_delete", _check_withholding_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability listeners.  Idempotent.

    Call after the models are importable and before any writes.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that intentionally violate immutability
    to verify detection.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
