"""
JournalEngine -- journal entry lifecycle, posting and reversal.

Responsibility:
    Owns JournalEntry.  Builds drafts from caller specs, enforces the
    debit = credit invariant, drives the DRAFT -> PENDING_APPROVAL/APPROVED
    -> POSTED -> REVERSED state machine, and is the only component that
    asks LedgerStore to write ledger lines.

Architecture position:
    Kernel > Services.  Consumes AccountRegistry, LedgerStore,
    SequenceService and AuditorService.  Called by ExpensePoster,
    WithholdingPoster and external workflows.

Invariants enforced:
    - |total_debit - total_credit| <= balance tolerance before an entry
      leaves DRAFT.
    - Posting writes one ledger line per nonzero side of every journal line,
      each tagged with the entry number as reference_number.  Either all
      lines are written or none (savepoint).
    - Reversal creates a new, auto-posted entry with every line's debit and
      credit swapped, marks the original's ledger lines REVERSED and the
      original entry REVERSED, all in one savepoint.
    - Reversal entries are never reversed.
    - Entry numbers are PREFIX + YYYYMMDD + "-" + NNNN from a per-date
      counter.

Failure modes:
    - InvalidJournalEntryError, AccountNotFoundError, AccountInactiveError
      on bad drafts.
    - UnbalancedEntryError when leaving DRAFT.
    - InvalidTransitionError and its subclasses NotApprovedError,
      NotPostedError, AlreadyReversedError.
    - InvalidReversalError when reversing a reversal.
    - ConcurrentModificationError on a version mismatch or StaleDataError.

Audit relevance:
    Every successful transition records an AuditEvent with actor,
    entry number, from_state, to_state and timestamp, and emits one
    structured log line.
"""

from collections.abc import Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import (
    JournalEntrySpec,
    JournalLineSpec,
    LedgerLineSpec,
    PostingResult,
    ReversalResult,
)
from ledger_kernel.domain.lifecycle import can_transition_journal
from ledger_kernel.domain.policy import DEFAULT_POSTING_POLICY, PostingPolicy
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AlreadyReversedError,
    ConcurrentModificationError,
    InvalidJournalEntryError,
    InvalidReversalError,
    InvalidTransitionError,
    JournalEntryNotFoundError,
    LedgerKernelError,
    NotApprovedError,
    NotPostedError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalEntryType,
    JournalLine,
)
from ledger_kernel.models.ledger import LedgerLineStatus
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_engine")

REVERSAL_REFERENCE_TYPE = "journal_reversal"


class JournalEngine(BaseService):
    """
    The journal entry state machine.

    Contract:
        Each public mutation either completes and is flushed, or raises and
        leaves the entry in its prior state.  ``expected_version``, when
        given, must match the entry's current version.

    Guarantees:
        - Posted entries balance within the configured tolerance.
        - A reversal offsets its original line for line.

    Non-goals:
        - Does NOT commit; callers own the transaction.
        - Does NOT decide who may approve; approval workflows call approve().
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: PostingPolicy | None = None,
        auditor: AuditorService | None = None,
        registry: AccountRegistry | None = None,
        ledger: LedgerStore | None = None,
    ):
        super().__init__(session, clock)
        self.policy = policy or DEFAULT_POSTING_POLICY
        self._auditor = auditor or AuditorService(session, self.clock)
        self._registry = registry or AccountRegistry(session, self.clock, self._auditor)
        self._ledger = ledger or LedgerStore(session, self.clock, self._registry)
        self._sequences = SequenceService(session)

    # =========================================================================
    # Loading and numbering
    # =========================================================================

    def _next_entry_number(self, entry_date: date) -> str:
        prefix = f"{self.policy.entry_number_prefix}{entry_date.strftime('%Y%m%d')}"
        seq = self._sequences.next_value(f"{SequenceService.JOURNAL_ENTRY}:{prefix}")
        return f"{prefix}-{seq:04d}"

    def get_entry(self, entry_number: str) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry).where(JournalEntry.entry_number == entry_number)
        ).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(entry_number)
        return entry

    def _load_for_update(
        self,
        entry_number: str,
        expected_version: int | None = None,
    ) -> JournalEntry:
        """Lock the entry row, re-read it, and check the caller's version."""
        entry = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.entry_number == entry_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(entry_number)

        if expected_version is not None and entry.version != expected_version:
            logger.warning(
                "journal_entry_version_conflict",
                extra={
                    "entry_number": entry_number,
                    "expected_version": expected_version,
                    "actual_version": entry.version,
                },
            )
            raise ConcurrentModificationError(entry_number, expected_version, entry.version)
        return entry

    def _flush(self, entry: JournalEntry) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModificationError(entry.entry_number) from exc

    # =========================================================================
    # Line building and balance
    # =========================================================================

    def _build_lines(
        self,
        specs: Sequence[JournalLineSpec],
        actor_id: UUID,
        entry_number: str | None = None,
    ) -> list[JournalLine]:
        if not specs:
            raise InvalidJournalEntryError("entry has no lines", entry_number)

        lines: list[JournalLine] = []
        for line_no, spec in enumerate(specs, start=1):
            account = self._registry.get_account(spec.account_code)
            if not account.is_active:
                raise AccountInactiveError(spec.account_code)

            debit = round_money(spec.debit_amount)
            credit = round_money(spec.credit_amount)
            if debit < ZERO or credit < ZERO:
                raise InvalidJournalEntryError(
                    f"line {line_no} has a negative amount", entry_number
                )
            if debit == ZERO and credit == ZERO:
                raise InvalidJournalEntryError(
                    f"line {line_no} has neither a debit nor a credit", entry_number
                )

            lines.append(
                JournalLine(
                    line_no=line_no,
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    sub_account=spec.sub_account,
                    description=spec.description,
                    debit_amount=debit,
                    credit_amount=credit,
                    cost_center=spec.cost_center,
                    project=spec.project,
                    department=spec.department,
                    created_by_id=actor_id,
                )
            )
        return lines

    @staticmethod
    def _totals(lines: Sequence[JournalLine]) -> tuple[Decimal, Decimal]:
        debit = sum((line.debit_amount for line in lines), ZERO)
        credit = sum((line.credit_amount for line in lines), ZERO)
        return round_money(debit), round_money(credit)

    def _validate_balance(self, entry: JournalEntry) -> None:
        debit, credit = self._totals(entry.lines)
        entry.total_debit = debit
        entry.total_credit = credit

        if debit == ZERO:
            raise InvalidJournalEntryError("entry has no amounts", entry.entry_number)

        difference = abs(debit - credit)
        if difference > self.policy.balance_tolerance:
            logger.warning(
                "balance_validation_failed",
                extra={
                    "entry_number": entry.entry_number,
                    "total_debit": str(debit),
                    "total_credit": str(credit),
                    "difference": str(difference),
                },
            )
            raise UnbalancedEntryError(str(debit), str(credit), entry.entry_number)

        if difference > ZERO:
            logger.warning(
                "balance_difference_within_tolerance",
                extra={"entry_number": entry.entry_number, "difference": str(difference)},
            )
        logger.debug(
            "balance_validated",
            extra={
                "entry_number": entry.entry_number,
                "total_debit": str(debit),
                "total_credit": str(credit),
                "difference": str(difference),
            },
        )

    # =========================================================================
    # Draft
    # =========================================================================

    def create_draft(self, spec: JournalEntrySpec, actor_id: UUID) -> JournalEntry:
        """
        Create a DRAFT entry from a caller spec.

        Lines are validated against the chart of accounts and quantized to
        two places.  Balance is not required until submit().
        """
        lines = self._build_lines(spec.lines, actor_id)
        total_debit, total_credit = self._totals(lines)
        entry_number = self._next_entry_number(spec.entry_date)

        entry = JournalEntry(
            entry_number=entry_number,
            entry_date=spec.entry_date,
            entry_type=spec.entry_type,
            description=spec.description,
            reference_number=spec.reference_number,
            reference_type=spec.reference_type,
            store_id=spec.store_id,
            transaction_type=spec.transaction_type,
            customer_id=spec.customer_id,
            customer_name=spec.customer_name,
            vendor_id=spec.vendor_id,
            vendor_name=spec.vendor_name,
            payment_method=spec.payment_method,
            total_debit=total_debit,
            total_credit=total_credit,
            status=JournalEntryStatus.DRAFT,
            approval_required=spec.approval_required,
            notes=spec.notes,
            lines=lines,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self._flush(entry)

        self._auditor.record_journal_transition(
            entry, AuditAction.JOURNAL_DRAFT_CREATED, actor_id, from_state=None
        )
        logger.info(
            "journal_entry_created",
            extra={
                "entry_number": entry_number,
                "entry_type": entry.entry_type.value,
                "line_count": len(lines),
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
            },
        )
        return entry

    def replace_lines(
        self,
        entry_number: str,
        lines: Sequence[JournalLineSpec],
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> JournalEntry:
        """Swap a DRAFT entry's lines for a new set."""
        entry = self._load_for_update(entry_number, expected_version)
        if entry.status != JournalEntryStatus.DRAFT:
            raise InvalidTransitionError(
                entry_number, entry.status.value, JournalEntryStatus.DRAFT.value
            )

        new_lines = self._build_lines(lines, actor_id, entry_number)

        # Old rows go first so line numbers can be reused
        entry.lines.clear()
        self._flush(entry)
        entry.lines.extend(new_lines)
        entry.total_debit, entry.total_credit = self._totals(new_lines)
        entry.updated_by_id = actor_id
        self._flush(entry)

        self._auditor.record_journal_transition(
            entry,
            AuditAction.JOURNAL_LINES_REPLACED,
            actor_id,
            from_state=JournalEntryStatus.DRAFT,
            details={"line_count": len(new_lines)},
        )
        logger.info(
            "journal_entry_lines_replaced",
            extra={"entry_number": entry_number, "line_count": len(new_lines)},
        )
        return entry

    # =========================================================================
    # Approval flow
    # =========================================================================

    def submit(
        self,
        entry_number: str,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> JournalEntry:
        """
        Leave DRAFT: to PENDING_APPROVAL when approval is required, else
        straight to APPROVED.

        Raises:
            UnbalancedEntryError: Totals differ by more than the tolerance.
        """
        entry = self._load_for_update(entry_number, expected_version)
        if entry.status != JournalEntryStatus.DRAFT:
            raise InvalidTransitionError(
                entry_number, entry.status.value, JournalEntryStatus.PENDING_APPROVAL.value
            )

        self._validate_balance(entry)

        from_state = entry.status
        if entry.approval_required:
            entry.status = JournalEntryStatus.PENDING_APPROVAL
        else:
            entry.status = JournalEntryStatus.APPROVED
            entry.approved_by_id = actor_id
            entry.approved_at = self.clock.now()
        entry.updated_by_id = actor_id
        self._flush(entry)

        self._auditor.record_journal_transition(
            entry, AuditAction.JOURNAL_SUBMITTED, actor_id, from_state=from_state
        )
        logger.info(
            "journal_entry_submitted",
            extra={"entry_number": entry_number, "status": entry.status.value},
        )
        return entry

    def approve(
        self,
        entry_number: str,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> JournalEntry:
        entry = self._load_for_update(entry_number, expected_version)
        if entry.status != JournalEntryStatus.PENDING_APPROVAL:
            raise InvalidTransitionError(
                entry_number, entry.status.value, JournalEntryStatus.APPROVED.value
            )

        from_state = entry.status
        entry.status = JournalEntryStatus.APPROVED
        entry.approved_by_id = actor_id
        entry.approved_at = self.clock.now()
        entry.updated_by_id = actor_id
        self._flush(entry)

        self._auditor.record_journal_transition(
            entry, AuditAction.JOURNAL_APPROVED, actor_id, from_state=from_state
        )
        logger.info(
            "journal_entry_approved",
            extra={"entry_number": entry_number, "approved_by": str(actor_id)},
        )
        return entry

    def reject(
        self,
        entry_number: str,
        actor_id: UUID,
        reason: str,
        expected_version: int | None = None,
    ) -> JournalEntry:
        """Send a PENDING_APPROVAL entry back to DRAFT."""
        entry = self._load_for_update(entry_number, expected_version)
        if entry.status != JournalEntryStatus.PENDING_APPROVAL:
            raise InvalidTransitionError(
                entry_number, entry.status.value, JournalEntryStatus.DRAFT.value
            )

        from_state = entry.status
        entry.status = JournalEntryStatus.DRAFT
        entry.updated_by_id = actor_id
        self._flush(entry)

        self._auditor.record_journal_transition(
            entry,
            AuditAction.JOURNAL_REJECTED,
            actor_id,
            from_state=from_state,
            details={"reason": reason},
        )
        logger.info(
            "journal_entry_rejected",
            extra={"entry_number": entry_number, "reason": reason},
        )
        return entry

    # =========================================================================
    # Posting
    # =========================================================================

    def _materialize(self, entry: JournalEntry, actor_id: UUID) -> int:
        """Write one ledger line per nonzero side of every journal line."""
        written = 0
        for line in entry.lines:
            sides = (
                ("D", line.debit_amount, ZERO),
                ("C", ZERO, line.credit_amount),
            )
            for suffix, debit, credit in sides:
                if debit == ZERO and credit == ZERO:
                    continue
                self._ledger.append(
                    LedgerLineSpec(
                        account_code=line.account_code,
                        transaction_date=entry.entry_date,
                        transaction_type=entry.transaction_type,
                        debit_amount=debit,
                        credit_amount=credit,
                        status=LedgerLineStatus.CONFIRMED,
                        transaction_id=f"{entry.entry_number}-{line.line_no:03d}-{suffix}",
                        sub_account=line.sub_account,
                        description=line.description or entry.description,
                        reference_number=entry.entry_number,
                        reference_type=entry.entry_type.value,
                        store_id=entry.store_id,
                        customer_id=entry.customer_id,
                        customer_name=entry.customer_name,
                        vendor_id=entry.vendor_id,
                        vendor_name=entry.vendor_name,
                        payment_method=entry.payment_method,
                        cost_center=line.cost_center,
                        project=line.project,
                        department=line.department,
                        journal_entry_id=entry.id,
                    ),
                    actor_id,
                )
                written += 1
        return written

    def _post_loaded(self, entry: JournalEntry, actor_id: UUID) -> int:
        from_state = entry.status
        line_count = self._materialize(entry, actor_id)
        entry.status = JournalEntryStatus.POSTED
        entry.posted_by_id = actor_id
        entry.posted_at = self.clock.now()
        entry.updated_by_id = actor_id
        self._flush(entry)
        self._auditor.record_journal_transition(
            entry,
            AuditAction.JOURNAL_POSTED,
            actor_id,
            from_state=from_state,
            details={"ledger_line_count": line_count},
        )
        return line_count

    def post(
        self,
        entry_number: str,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> JournalEntry:
        """
        APPROVED -> POSTED, writing the ledger lines atomically.

        Raises:
            NotApprovedError: The entry is not APPROVED.
        """
        with LogContext.bind(entry_number=entry_number, actor_id=str(actor_id)):
            entry = self._load_for_update(entry_number, expected_version)
            if not can_transition_journal(entry.status, JournalEntryStatus.POSTED):
                raise NotApprovedError(entry_number, entry.status.value)

            with self.session.begin_nested():
                line_count = self._post_loaded(entry, actor_id)

            logger.info(
                "journal_entry_posted",
                extra={
                    "entry_number": entry_number,
                    "ledger_line_count": line_count,
                    "total_debit": str(entry.total_debit),
                    "total_credit": str(entry.total_credit),
                },
            )
            return entry

    def create_and_post(self, spec: JournalEntrySpec, actor_id: UUID) -> JournalEntry:
        """
        Pre-approved fast path: draft, validate, approve and post in one
        savepoint.  Nothing persists if any step fails.
        """
        spec = replace(spec, approval_required=False)
        with self.session.begin_nested():
            entry = self.create_draft(spec, actor_id)
            self.submit(entry.entry_number, actor_id)
            line_count = self._post_loaded(entry, actor_id)

        logger.info(
            "journal_entry_posted",
            extra={
                "entry_number": entry.entry_number,
                "ledger_line_count": line_count,
                "total_debit": str(entry.total_debit),
                "total_credit": str(entry.total_credit),
                "fast_path": True,
            },
        )
        return entry

    def try_post(self, entry_number: str, actor_id: UUID) -> PostingResult:
        """
        post() for calling workflows that want a result object instead of
        an exception.  Storage errors still propagate.
        """
        try:
            entry = self.post(entry_number, actor_id)
        except LedgerKernelError as exc:
            current = self.session.execute(
                select(JournalEntry.status).where(JournalEntry.entry_number == entry_number)
            ).scalar_one_or_none()
            logger.warning(
                "journal_entry_post_rejected",
                extra={"entry_number": entry_number, "error_code": exc.code},
            )
            return PostingResult.rejected(exc.code, str(exc), entry_number, current)
        return PostingResult.posted(entry.entry_number)

    # =========================================================================
    # Reversal
    # =========================================================================

    def _find_reversal(self, original: JournalEntry) -> JournalEntry | None:
        return self.session.execute(
            select(JournalEntry).where(JournalEntry.reversed_entry_id == original.id)
        ).scalar_one_or_none()

    def reverse(
        self,
        entry_number: str,
        reason: str,
        actor_id: UUID,
        reversal_date: date | None = None,
        expected_version: int | None = None,
    ) -> ReversalResult:
        """
        POSTED -> REVERSED via a new, auto-posted offsetting entry.

        Raises:
            AlreadyReversedError: The entry was reversed before.
            InvalidReversalError: The entry is itself a reversal.
            NotPostedError: The entry was never posted.
        """
        with LogContext.bind(entry_number=entry_number, actor_id=str(actor_id)):
            original = self._load_for_update(entry_number, expected_version)

            if original.status == JournalEntryStatus.REVERSED:
                existing = self._find_reversal(original)
                raise AlreadyReversedError(
                    entry_number, existing.entry_number if existing else None
                )
            if original.is_reversal:
                raise InvalidReversalError(entry_number)
            if not can_transition_journal(original.status, JournalEntryStatus.REVERSED):
                raise NotPostedError(entry_number, original.status.value)

            with self.session.begin_nested():
                reversal = self._build_reversal(original, reason, actor_id, reversal_date)
                self.session.add(reversal)
                self._flush(reversal)
                self._auditor.record_journal_transition(
                    reversal,
                    AuditAction.JOURNAL_DRAFT_CREATED,
                    actor_id,
                    from_state=None,
                    details={"reverses": entry_number},
                )
                self._post_loaded(reversal, actor_id)

                self._ledger.mark_reversed(entry_number, reason, actor_id)

                from_state = original.status
                original.status = JournalEntryStatus.REVERSED
                original.reversal_reason = reason
                original.updated_by_id = actor_id
                self._flush(original)
                self._auditor.record_journal_transition(
                    original,
                    AuditAction.JOURNAL_REVERSED,
                    actor_id,
                    from_state=from_state,
                    details={"reversal_entry_number": reversal.entry_number, "reason": reason},
                )

            logger.info(
                "journal_entry_reversed",
                extra={
                    "entry_number": entry_number,
                    "reversal_entry_number": reversal.entry_number,
                    "reason": reason,
                },
            )
            return ReversalResult(
                original_entry_number=entry_number,
                reversal_entry_number=reversal.entry_number,
                reversal_entry_id=reversal.id,
                reversed_at=reversal.posted_at,
                reason=reason,
            )

    def _build_reversal(
        self,
        original: JournalEntry,
        reason: str,
        actor_id: UUID,
        reversal_date: date | None,
    ) -> JournalEntry:
        entry_date = reversal_date or self.clock.today()
        lines = [
            JournalLine(
                line_no=line.line_no,
                account_id=line.account_id,
                account_code=line.account_code,
                account_name=line.account_name,
                sub_account=line.sub_account,
                description=f"Reversal of {line.description or original.description}",
                debit_amount=line.credit_amount,
                credit_amount=line.debit_amount,
                cost_center=line.cost_center,
                project=line.project,
                department=line.department,
                created_by_id=actor_id,
            )
            for line in original.lines
        ]
        now = self.clock.now()
        return JournalEntry(
            entry_number=self._next_entry_number(entry_date),
            entry_date=entry_date,
            entry_type=JournalEntryType.REVERSAL,
            description=f"Reversal of {original.entry_number}",
            reference_number=original.entry_number,
            reference_type=REVERSAL_REFERENCE_TYPE,
            store_id=original.store_id,
            transaction_type=original.transaction_type,
            customer_id=original.customer_id,
            customer_name=original.customer_name,
            vendor_id=original.vendor_id,
            vendor_name=original.vendor_name,
            payment_method=original.payment_method,
            total_debit=original.total_credit,
            total_credit=original.total_debit,
            status=JournalEntryStatus.APPROVED,
            approval_required=False,
            approved_by_id=actor_id,
            approved_at=now,
            is_reversal=True,
            reversed_entry_id=original.id,
            reversal_reason=reason,
            lines=lines,
            created_by_id=actor_id,
        )
