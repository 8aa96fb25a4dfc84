"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerKernelError and carry a machine-readable
``code`` class attribute plus structured instance attributes:

    LedgerKernelError (base)
    |
    +-- ValidationError               rejected before any write
    |   +-- AccountNotFoundError
    |   +-- DuplicateAccountCodeError
    |   +-- AccountInactiveError
    |   +-- AccountTypeChangedError
    |   +-- HierarchyDepthExceededError
    |   +-- InvalidLedgerLineError
    |   +-- DuplicateTransactionError
    |   +-- InvalidJournalEntryError
    |   +-- JournalEntryNotFoundError
    |   +-- UnknownWithholdingSectionError
    |   +-- WithholdingRecordNotFoundError
    |   +-- InvalidPaymentMethodError
    |
    +-- InvariantViolation            programming/input error, never retried
    |   +-- UnbalancedEntryError
    |   +-- ImmutabilityViolationError
    |   +-- AccountTypeLockedError
    |   +-- InvalidReversalError
    |   +-- AuditChainBrokenError
    |
    +-- StateError                    carries the current state
    |   +-- InvalidTransitionError
    |   |   +-- NotApprovedError
    |   |   +-- NotPostedError
    |   |   +-- AlreadyReversedError
    |   +-- WithholdingStateError
    |
    +-- ConcurrencyError              safe to retry after re-reading
        +-- ConcurrentModificationError

Storage failures are not wrapped: SQLAlchemyError propagates unchanged so
the caller can retry with backoff. No partial state is committed because
every multi-step mutation runs inside a savepoint.

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        engine.post(entry_number, actor_id=actor)
    except NotApprovedError as e:
        return {"error": e.code, "status": e.current_state}
    except ConcurrentModificationError:
        session.rollback()
        retry()
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses define a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(LedgerKernelError):
    """Missing or invalid input. Nothing has been written."""

    code: str = "VALIDATION_ERROR"


class AccountNotFoundError(ValidationError):
    """Account code does not exist in the chart of accounts."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account not found: {account_code}")


class DuplicateAccountCodeError(ValidationError):
    """An account with this code already exists."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class AccountInactiveError(ValidationError):
    """Account is deactivated and cannot receive postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account is inactive: {account_code}")


class AccountTypeChangedError(ValidationError):
    """Account type differs from the type recorded on its first posting."""

    code: str = "ACCOUNT_TYPE_CHANGED"

    def __init__(self, account_code: str, first_used_type: str, current_type: str):
        self.account_code = account_code
        self.first_used_type = first_used_type
        self.current_type = current_type
        super().__init__(
            f"Account {account_code} was first posted as {first_used_type} "
            f"but is now {current_type}"
        )


class HierarchyDepthExceededError(ValidationError):
    """Account tree would exceed the maximum depth."""

    code: str = "HIERARCHY_DEPTH_EXCEEDED"

    def __init__(self, account_code: str, level: int, max_level: int):
        self.account_code = account_code
        self.level = level
        self.max_level = max_level
        super().__init__(
            f"Account {account_code} would sit at level {level}; "
            f"maximum depth is {max_level}"
        )


class InvalidLedgerLineError(ValidationError):
    """Ledger line amounts or status are inconsistent."""

    code: str = "INVALID_LEDGER_LINE"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Invalid ledger line for {account_code}: {reason}")


class DuplicateTransactionError(ValidationError):
    """Transaction identifier already used by another ledger line."""

    code: str = "DUPLICATE_TRANSACTION"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction id already exists: {transaction_id}")


class InvalidJournalEntryError(ValidationError):
    """Journal entry content is invalid (no lines, zero lines, bad amounts)."""

    code: str = "INVALID_JOURNAL_ENTRY"

    def __init__(self, reason: str, entry_number: str | None = None):
        self.entry_number = entry_number
        self.reason = reason
        prefix = f"Journal entry {entry_number}" if entry_number else "Journal entry"
        super().__init__(f"{prefix} is invalid: {reason}")


class JournalEntryNotFoundError(ValidationError):
    """No journal entry with this number."""

    code: str = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, entry_number: str):
        self.entry_number = entry_number
        super().__init__(f"Journal entry not found: {entry_number}")


class UnknownWithholdingSectionError(ValidationError):
    """Withholding section code is not in the configured section table."""

    code: str = "UNKNOWN_WITHHOLDING_SECTION"

    def __init__(self, section: str):
        self.section = section
        super().__init__(f"Unknown withholding section: {section}")


class WithholdingRecordNotFoundError(ValidationError):
    """No withholding record with this number."""

    code: str = "WITHHOLDING_RECORD_NOT_FOUND"

    def __init__(self, tds_number: str):
        self.tds_number = tds_number
        super().__init__(f"Withholding record not found: {tds_number}")


class InvalidPaymentMethodError(ValidationError):
    """Payment method is not one of the PaymentMethod values."""

    code: str = "INVALID_PAYMENT_METHOD"

    def __init__(self, payment_method: object, reference_number: str | None = None):
        self.payment_method = payment_method
        self.reference_number = reference_number
        super().__init__(f"Unknown payment method {payment_method!r} on {reference_number}")


# =============================================================================
# Invariant violations
# =============================================================================


class InvariantViolation(LedgerKernelError):
    """A ledger invariant would be broken. Never retried automatically."""

    code: str = "INVARIANT_VIOLATION"


class UnbalancedEntryError(InvariantViolation):
    """Journal entry debits and credits differ by more than the tolerance."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, entry_number: str | None = None):
        self.debits = debits
        self.credits = credits
        self.entry_number = entry_number
        super().__init__(
            f"Unbalanced entry {entry_number or '<new>'}: "
            f"debits={debits}, credits={credits}"
        )


class ImmutabilityViolationError(InvariantViolation):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AccountTypeLockedError(InvariantViolation):
    """Account type cannot change once postings reference the account."""

    code: str = "ACCOUNT_TYPE_LOCKED"

    def __init__(self, account_code: str, current_type: str):
        self.account_code = account_code
        self.current_type = current_type
        super().__init__(
            f"Account {account_code} has postings; type {current_type} is locked"
        )


class InvalidReversalError(InvariantViolation):
    """Reversal entries are never themselves reversed."""

    code: str = "INVALID_REVERSAL"

    def __init__(self, entry_number: str):
        self.entry_number = entry_number
        super().__init__(f"Entry {entry_number} is a reversal and cannot be reversed")


class AuditChainBrokenError(InvariantViolation):
    """Recomputed audit hash does not match the stored chain."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {seq}: expected {expected_hash}, "
            f"found {actual_hash}"
        )


# =============================================================================
# State errors
# =============================================================================


class StateError(LedgerKernelError):
    """Operation is not legal in the record's current state."""

    code: str = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """Journal entry state machine rejected the transition."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entry_number: str, current_state: str, target_state: str):
        self.entry_number = entry_number
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Entry {entry_number}: cannot move from {current_state} to {target_state}"
        )


class NotApprovedError(InvalidTransitionError):
    """Posting requires the entry to be APPROVED."""

    code: str = "NOT_APPROVED"

    def __init__(self, entry_number: str, current_state: str):
        super().__init__(entry_number, current_state, "posted")


class NotPostedError(InvalidTransitionError):
    """Reversal requires the entry to be POSTED."""

    code: str = "NOT_POSTED"

    def __init__(self, entry_number: str, current_state: str):
        super().__init__(entry_number, current_state, "reversed")


class AlreadyReversedError(InvalidTransitionError):
    """Entry has already been reversed."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, entry_number: str, reversal_entry_number: str | None = None):
        self.reversal_entry_number = reversal_entry_number
        super().__init__(entry_number, "reversed", "reversed")


class WithholdingStateError(StateError):
    """Withholding record status transition is not allowed."""

    code: str = "WITHHOLDING_STATE_ERROR"

    def __init__(self, tds_number: str, current_state: str, target_state: str):
        self.tds_number = tds_number
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Withholding record {tds_number}: cannot move from "
            f"{current_state} to {target_state}"
        )


# =============================================================================
# Concurrency errors
# =============================================================================


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Another transaction changed the entry first. Re-read and retry."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entry_number: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entry_number = entry_number
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Journal entry {entry_number} was modified by another transaction "
            f"(expected version {expected_version}, found {actual_version})"
        )
