"""
LedgerStore -- append-only store of ledger lines.

Responsibility:
    The single write path for LedgerLine rows.  Validates each posting
    against the chart of accounts, assigns transaction ids, and performs
    the one status change the ledger allows (CONFIRMED -> REVERSED).

Architecture position:
    Kernel > Services.  Called by JournalEngine when an entry is posted or
    reversed.  Reads go through LedgerSelector.

Invariants enforced:
    - The account exists, is active, and still has the type recorded on its
      first ledger line.
    - Amounts are non-negative and quantized to two places; exactly one side
      is nonzero, or both are zero for a CANCELLED (void) line.
    - transaction_id is unique.  Generated ids are TXN-YYYYMMDD-NNNNNN from a
      per-date counter.
    - There is no update-in-place or delete API.

Failure modes:
    - AccountNotFoundError, AccountInactiveError, AccountTypeChangedError,
      InvalidLedgerLineError, DuplicateTransactionError.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import LedgerLineSpec
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountTypeChangedError,
    DuplicateTransactionError,
    InvalidLedgerLineError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger import LedgerLine, LedgerLineStatus
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_store")


class LedgerStore(BaseService):
    """
    Append-only ledger line writer.

    Contract:
        ``append`` writes exactly one line or raises; ``mark_reversed``
        touches only status and reversal_reason.

    Non-goals:
        - Does NOT check that a group of lines balances; that is the
          journal engine's job.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        registry: AccountRegistry | None = None,
    ):
        super().__init__(session, clock)
        self._registry = registry or AccountRegistry(session, self.clock)
        self._sequences = SequenceService(session)
        self._selector = LedgerSelector(session)

    def _next_transaction_id(self, spec: LedgerLineSpec) -> str:
        day = spec.transaction_date.strftime("%Y%m%d")
        seq = self._sequences.next_value(f"{SequenceService.LEDGER_TRANSACTION}:{day}")
        return f"TXN-{day}-{seq:06d}"

    def _validate_amounts(self, spec: LedgerLineSpec):
        debit = round_money(spec.debit_amount)
        credit = round_money(spec.credit_amount)
        status = LedgerLineStatus(spec.status)

        if debit < ZERO or credit < ZERO:
            raise InvalidLedgerLineError(spec.account_code, "amounts must be non-negative")
        if debit > ZERO and credit > ZERO:
            raise InvalidLedgerLineError(
                spec.account_code, "a line carries either a debit or a credit, not both"
            )
        if debit == ZERO and credit == ZERO and status != LedgerLineStatus.CANCELLED:
            raise InvalidLedgerLineError(
                spec.account_code, "zero-amount lines are only allowed when cancelled"
            )
        if status == LedgerLineStatus.REVERSED:
            raise InvalidLedgerLineError(
                spec.account_code, "lines are never written already reversed"
            )
        return debit, credit, status

    def append(self, spec: LedgerLineSpec, actor_id: UUID) -> LedgerLine:
        """
        Validate and write one ledger line.

        Raises:
            AccountNotFoundError: Unknown account code.
            AccountInactiveError: The account is deactivated.
            AccountTypeChangedError: The account type differs from its
                first posting.
            InvalidLedgerLineError: Amount or status rules are broken.
            DuplicateTransactionError: transaction_id already exists.
        """
        account = self._registry.get_account(spec.account_code)
        if not account.is_active:
            raise AccountInactiveError(spec.account_code)

        first_type = self._selector.first_used_type(account)
        if first_type is not None and first_type != account.account_type:
            raise AccountTypeChangedError(
                spec.account_code, first_type.value, account.account_type.value
            )

        debit, credit, status = self._validate_amounts(spec)

        transaction_id = spec.transaction_id or self._next_transaction_id(spec)
        exists = self.session.execute(
            select(LedgerLine.id).where(LedgerLine.transaction_id == transaction_id)
        ).first()
        if exists is not None:
            raise DuplicateTransactionError(transaction_id)

        line = LedgerLine(
            transaction_id=transaction_id,
            transaction_date=spec.transaction_date,
            transaction_type=spec.transaction_type,
            account_id=account.id,
            account_code=account.code,
            account_type=account.account_type,
            sub_account=spec.sub_account,
            description=spec.description,
            debit_amount=debit,
            credit_amount=credit,
            status=status,
            reference_number=spec.reference_number,
            reference_type=spec.reference_type,
            store_id=spec.store_id,
            customer_id=spec.customer_id,
            customer_name=spec.customer_name,
            vendor_id=spec.vendor_id,
            vendor_name=spec.vendor_name,
            payment_method=spec.payment_method,
            cost_center=spec.cost_center,
            project=spec.project,
            department=spec.department,
            journal_entry_id=spec.journal_entry_id,
            created_by_id=actor_id,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(line)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateTransactionError(transaction_id) from None

        logger.debug(
            "ledger_line_appended",
            extra={
                "transaction_id": transaction_id,
                "account_code": account.code,
                "debit": str(debit),
                "credit": str(credit),
                "status": status.value,
                "reference_number": spec.reference_number,
            },
        )
        return line

    def mark_reversed(
        self,
        reference_number: str,
        reason: str,
        actor_id: UUID,
    ) -> list[LedgerLine]:
        """
        Move every CONFIRMED line of a reference to REVERSED.

        Amounts are untouched; the offsetting lines come from the reversal
        entry.  Returns the lines that changed.
        """
        lines = self.session.execute(
            select(LedgerLine)
            .where(LedgerLine.reference_number == reference_number)
            .where(LedgerLine.status == LedgerLineStatus.CONFIRMED)
            .order_by(LedgerLine.transaction_id)
        ).scalars().all()

        for line in lines:
            line.status = LedgerLineStatus.REVERSED
            line.reversal_reason = reason
            line.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "ledger_lines_reversed",
            extra={"reference_number": reference_number, "line_count": len(lines)},
        )
        return list(lines)
