"""
WithholdingPoster -- tax deducted at source on vendor transactions.

Responsibility:
    Records a withholding deduction, derives its amounts and due dates once,
    posts the withheld amount (debit TDS expense, credit TDS payable) and
    moves the record through PENDING -> DEDUCTED -> DEPOSITED ->
    RETURN_FILED, or to CANCELLED.

Architecture position:
    Kernel > Services.  Called by the vendor payment workflow.  Posts through
    JournalEngine.create_and_post; reads through WithholdingSelector.

Invariants enforced:
    - tds_amount = gross * rate / 100 (half-up, two places) and
      net_amount = gross - tds_amount, computed at creation only.
    - The section must exist in the configured section table; an explicit
      rate overrides the section's default rate.
    - Status moves follow WITHHOLDING_TRANSITIONS; nothing else is allowed.
    - Cancelling a deducted record reverses its journal entry in the same
      savepoint.

Failure modes:
    - UnknownWithholdingSectionError for an unconfigured section.
    - ValueError for a negative gross amount or a rate outside 0..100.
    - WithholdingRecordNotFoundError, WithholdingStateError.

Audit relevance:
    Creation and every status change produce an AuditEvent keyed by
    tds_number.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import (
    JournalEntrySpec,
    JournalLineSpec,
    WithholdingRequest,
)
from ledger_kernel.domain.lifecycle import can_transition_withholding
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.withholding import derive_withholding
from ledger_kernel.exceptions import (
    UnknownWithholdingSectionError,
    WithholdingRecordNotFoundError,
    WithholdingStateError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntryType
from ledger_kernel.models.ledger import TransactionType
from ledger_kernel.models.withholding import WithholdingRecord, WithholdingStatus
from ledger_kernel.selectors.withholding_selector import (
    WithholdingSelector,
    WithholdingSummary,
)
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_engine import JournalEngine
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.withholding_poster")

TDS_NUMBER_PREFIX = "TDS"
TDS_REFERENCE_TYPE = "tds"


class WithholdingPoster(BaseService):
    """
    Withholding records and their postings.

    Contract:
        Every mutation is flushed, audited and logged.  Records are looked
        up by tds_number.

    Non-goals:
        - Does NOT compute tax beyond rate * gross; thresholds and surcharges
          belong to the payment workflow.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        engine: JournalEngine | None = None,
        policy: PostingPolicy | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._engine = engine or JournalEngine(
            session, self.clock, policy=policy, auditor=self._auditor
        )
        self.policy = policy or self._engine.policy
        self._sequences = SequenceService(session)
        self._selector = WithholdingSelector(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_record(self, tds_number: str) -> WithholdingRecord:
        record = self._selector.get_record(tds_number)
        if record is None:
            raise WithholdingRecordNotFoundError(tds_number)
        return record

    def _load_for_update(self, tds_number: str) -> WithholdingRecord:
        record = self.session.execute(
            select(WithholdingRecord)
            .where(WithholdingRecord.tds_number == tds_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise WithholdingRecordNotFoundError(tds_number)
        return record

    def summary(
        self,
        store_id: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> WithholdingSummary:
        return self._selector.summary(store_id, from_date, to_date)

    def _next_tds_number(self, tds_date: date) -> str:
        prefix = f"{TDS_NUMBER_PREFIX}{tds_date.strftime('%Y%m%d')}"
        seq = self._sequences.next_value(f"{SequenceService.WITHHOLDING}:{prefix}")
        return f"{prefix}-{seq:04d}"

    def _transition(
        self,
        record: WithholdingRecord,
        target: WithholdingStatus,
    ) -> WithholdingStatus:
        current = WithholdingStatus(record.status)
        if not can_transition_withholding(current, target):
            raise WithholdingStateError(record.tds_number, current.value, target.value)
        record.status = target
        return current

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_record(self, request: WithholdingRequest, actor_id: UUID) -> WithholdingRecord:
        """
        Record a deduction and post the withheld amount.

        Returns the record in DEDUCTED status with journal_entry_number set
        (left unset when nothing is withheld).
        """
        section = self.policy.section(request.tds_section)
        if section is None:
            raise UnknownWithholdingSectionError(request.tds_section)

        rate = request.tds_rate if request.tds_rate is not None else section.rate
        figures = derive_withholding(request.gross_amount, rate, request.payment_date)
        tds_date = request.tds_date or request.payment_date

        with self.session.begin_nested():
            record = WithholdingRecord(
                tds_number=self._next_tds_number(tds_date),
                tds_date=tds_date,
                store_id=request.store_id,
                vendor_id=request.vendor_id,
                vendor_name=request.vendor_name,
                vendor_pan=request.vendor_pan,
                source_transaction_id=request.source_transaction_id,
                source_transaction_type=request.source_transaction_type,
                invoice_number=request.invoice_number,
                invoice_date=request.invoice_date,
                gross_amount=figures.gross_amount,
                tds_section=section.code,
                section_description=section.description,
                tds_rate=figures.tds_rate,
                tds_amount=figures.tds_amount,
                net_amount=figures.net_amount,
                payment_date=request.payment_date,
                payment_method=request.payment_method,
                deposit_due_date=figures.deposit_due_date,
                return_due_date=figures.return_due_date,
                return_quarter=figures.return_quarter,
                return_year=figures.return_year,
                return_period=figures.return_period,
                status=WithholdingStatus.PENDING,
                created_by_id=actor_id,
            )
            self.session.add(record)
            self.session.flush()
            self._auditor.record_withholding_recorded(record, actor_id)

            if figures.tds_amount > ZERO:
                entry = self._engine.create_and_post(self._build_entry(record), actor_id)
                record.journal_entry_number = entry.entry_number

            from_state = self._transition(record, WithholdingStatus.DEDUCTED)
            record.updated_by_id = actor_id
            self.session.flush()
            self._auditor.record_withholding_status_changed(
                record,
                from_state,
                actor_id,
                details={"journal_entry_number": record.journal_entry_number},
            )

        logger.info(
            "withholding_recorded",
            extra={
                "tds_number": record.tds_number,
                "tds_section": record.tds_section,
                "gross_amount": str(record.gross_amount),
                "tds_amount": str(record.tds_amount),
                "journal_entry_number": record.journal_entry_number,
            },
        )
        return record

    def _build_entry(self, record: WithholdingRecord) -> JournalEntrySpec:
        accounts = self.policy.accounts
        return JournalEntrySpec(
            entry_date=record.tds_date,
            description=f"TDS {record.tds_section} on {record.source_transaction_id}",
            entry_type=JournalEntryType.WITHHOLDING,
            transaction_type=TransactionType.PAYMENT,
            approval_required=False,
            reference_number=record.tds_number,
            reference_type=TDS_REFERENCE_TYPE,
            store_id=record.store_id,
            vendor_id=record.vendor_id,
            vendor_name=record.vendor_name,
            lines=(
                JournalLineSpec.debit(
                    accounts.tds_expense,
                    record.tds_amount,
                    sub_account=record.tds_section,
                    description=f"TDS expense for {record.vendor_name}",
                ),
                JournalLineSpec.credit(
                    accounts.tds_payable,
                    record.tds_amount,
                    sub_account=record.tds_section,
                    description=f"TDS deducted from {record.vendor_name}",
                ),
            ),
        )

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def mark_deposited(
        self,
        tds_number: str,
        actor_id: UUID,
        challan_number: str,
        challan_date: date,
        bsr_code: str | None = None,
    ) -> WithholdingRecord:
        """DEDUCTED -> DEPOSITED, recording the challan."""
        record = self._load_for_update(tds_number)
        from_state = self._transition(record, WithholdingStatus.DEPOSITED)
        record.challan_number = challan_number
        record.challan_date = challan_date
        record.bsr_code = bsr_code
        record.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_withholding_status_changed(
            record,
            from_state,
            actor_id,
            details={"challan_number": challan_number, "challan_date": challan_date},
        )
        if challan_date > record.deposit_due_date:
            logger.warning(
                "withholding_deposited_late",
                extra={
                    "tds_number": tds_number,
                    "deposit_due_date": record.deposit_due_date.isoformat(),
                    "challan_date": challan_date.isoformat(),
                },
            )
        logger.info(
            "withholding_deposited",
            extra={"tds_number": tds_number, "challan_number": challan_number},
        )
        return record

    def mark_return_filed(
        self,
        tds_number: str,
        actor_id: UUID,
        acknowledgement_number: str,
    ) -> WithholdingRecord:
        """DEPOSITED -> RETURN_FILED."""
        record = self._load_for_update(tds_number)
        from_state = self._transition(record, WithholdingStatus.RETURN_FILED)
        record.acknowledgement_number = acknowledgement_number
        record.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_withholding_status_changed(
            record,
            from_state,
            actor_id,
            details={"acknowledgement_number": acknowledgement_number},
        )
        logger.info(
            "withholding_return_filed",
            extra={"tds_number": tds_number, "return_period": record.return_period},
        )
        return record

    def cancel(self, tds_number: str, reason: str, actor_id: UUID) -> WithholdingRecord:
        """
        PENDING or DEDUCTED -> CANCELLED.

        A posted deduction is reversed through the journal engine first.
        """
        record = self._load_for_update(tds_number)
        reversal_entry_number = None

        with self.session.begin_nested():
            from_state = self._transition(record, WithholdingStatus.CANCELLED)
            if record.journal_entry_number is not None:
                result = self._engine.reverse(
                    record.journal_entry_number,
                    reason,
                    actor_id,
                    reversal_date=self.clock.today(),
                )
                reversal_entry_number = result.reversal_entry_number
            record.cancellation_reason = reason
            record.updated_by_id = actor_id
            self.session.flush()

            self._auditor.record_withholding_status_changed(
                record,
                from_state,
                actor_id,
                details={"reason": reason, "reversal_entry_number": reversal_entry_number},
            )

        logger.info(
            "withholding_cancelled",
            extra={
                "tds_number": tds_number,
                "reason": reason,
                "reversal_entry_number": reversal_entry_number,
            },
        )
        return record
