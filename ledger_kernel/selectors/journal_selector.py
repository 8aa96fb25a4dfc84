"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only query access to journal entries and their lines,
    converted to frozen DTOs.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Read-only.
    - Lines are ordered by line_no; entries by entry_date then entry_number.

Failure modes:
    - Returns None or an empty list when nothing matches; never raises on
      absence of data.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalEntryType,
)
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class JournalLineDTO:
    line_no: int
    account_code: str
    account_name: str | None
    debit_amount: Decimal
    credit_amount: Decimal
    description: str | None
    sub_account: str | None
    cost_center: str | None
    department: str | None


@dataclass(frozen=True)
class JournalEntryDTO:
    """Read-only view of one journal entry."""

    id: UUID
    entry_number: str
    entry_date: date
    entry_type: JournalEntryType
    description: str
    status: JournalEntryStatus
    store_id: str | None
    total_debit: Decimal
    total_credit: Decimal
    approval_required: bool
    approved_by_id: UUID | None
    approved_at: datetime | None
    posted_by_id: UUID | None
    posted_at: datetime | None
    is_reversal: bool
    reversed_entry_id: UUID | None
    reversal_reason: str | None
    version: int
    lines: tuple[JournalLineDTO, ...]

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


class JournalSelector(BaseSelector):
    """Selector for journal entry queries."""

    @staticmethod
    def _to_dto(entry: JournalEntry) -> JournalEntryDTO:
        return JournalEntryDTO(
            id=entry.id,
            entry_number=entry.entry_number,
            entry_date=entry.entry_date,
            entry_type=entry.entry_type,
            description=entry.description,
            status=entry.status,
            store_id=entry.store_id,
            total_debit=entry.total_debit,
            total_credit=entry.total_credit,
            approval_required=entry.approval_required,
            approved_by_id=entry.approved_by_id,
            approved_at=entry.approved_at,
            posted_by_id=entry.posted_by_id,
            posted_at=entry.posted_at,
            is_reversal=entry.is_reversal,
            reversed_entry_id=entry.reversed_entry_id,
            reversal_reason=entry.reversal_reason,
            version=entry.version,
            lines=tuple(
                JournalLineDTO(
                    line_no=line.line_no,
                    account_code=line.account_code,
                    account_name=line.account_name,
                    debit_amount=line.debit_amount,
                    credit_amount=line.credit_amount,
                    description=line.description,
                    sub_account=line.sub_account,
                    cost_center=line.cost_center,
                    department=line.department,
                )
                for line in entry.lines
            ),
        )

    def get_entry(self, entry_number: str) -> JournalEntryDTO | None:
        entry = self.session.execute(
            select(JournalEntry).where(JournalEntry.entry_number == entry_number)
        ).scalar_one_or_none()
        return self._to_dto(entry) if entry else None

    def get_reversal_of(self, entry_number: str) -> JournalEntryDTO | None:
        """The reversal entry that cancels ``entry_number``, if any."""
        original = self.session.execute(
            select(JournalEntry.id).where(JournalEntry.entry_number == entry_number)
        ).scalar_one_or_none()
        if original is None:
            return None
        reversal = self.session.execute(
            select(JournalEntry).where(JournalEntry.reversed_entry_id == original)
        ).scalar_one_or_none()
        return self._to_dto(reversal) if reversal else None

    def get_entries(
        self,
        status: JournalEntryStatus | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
        store_id: str | None = None,
        limit: int | None = None,
    ) -> list[JournalEntryDTO]:
        stmt = select(JournalEntry)
        if status is not None:
            stmt = stmt.where(JournalEntry.status == status)
        if from_date is not None:
            stmt = stmt.where(JournalEntry.entry_date >= from_date)
        if to_date is not None:
            stmt = stmt.where(JournalEntry.entry_date <= to_date)
        if store_id is not None:
            stmt = stmt.where(JournalEntry.store_id == store_id)
        stmt = stmt.order_by(JournalEntry.entry_date, JournalEntry.entry_number)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [self._to_dto(e) for e in self.session.execute(stmt).scalars().all()]

    def count_entries(self, status: JournalEntryStatus | None = None) -> int:
        stmt = select(func.count(JournalEntry.id))
        if status is not None:
            stmt = stmt.where(JournalEntry.status == status)
        return self.session.execute(stmt).scalar_one()
