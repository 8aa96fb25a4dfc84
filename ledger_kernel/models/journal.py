"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and their ordered lines.
Architecture position: Kernel > Models.  May import from db/ and sibling models.
    MUST NOT import from services/, selectors/ or domain/.

Invariants enforced:
    - entry_number is unique (uq_journal_entry_number).
    - |total_debit - total_credit| <= tolerance before leaving DRAFT
      (checked by JournalEngine; is_balanced is the read-side helper).
    - Lines are frozen once the entry is POSTED; a POSTED entry may only
      move to REVERSED (db/immutability.py).
    - version is SQLAlchemy's version_id_col: a concurrent UPDATE against a
      stale row raises StaleDataError.

Audit relevance:
    reversed_entry_id links a reversal to the entry it cancels.  Reversals
    are never themselves reversed, so the link never chains.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import EnumString
from ledger_kernel.models.ledger import PaymentMethod, TransactionType


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    DRAFT -> PENDING_APPROVAL -> APPROVED -> POSTED -> REVERSED, with
    DRAFT -> APPROVED when no approval is required and
    PENDING_APPROVAL -> DRAFT on rejection.
    """

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    POSTED = "posted"
    REVERSED = "reversed"


class JournalEntryType(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"
    RECURRING = "recurring"
    REVERSAL = "reversal"
    ADJUSTMENT = "adjustment"
    SALES = "sales"
    PURCHASE = "purchase"
    PAYMENT = "payment"
    RECEIPT = "receipt"
    TRANSFER = "transfer"
    EXPENSE = "expense"
    WITHHOLDING = "withholding"


class JournalEntry(TrackedBase):
    """
    A multi-line journal entry and its lifecycle state.

    Contract:
        Only JournalEngine changes status.  Posting materializes one ledger
        line per nonzero side of every journal line.

    Guarantees:
        - total_debit/total_credit equal the sums over lines whenever the
          entry is outside DRAFT.
        - reversed_entry_id is set iff is_reversal is True.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("entry_number", name="uq_journal_entry_number"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_reversed_entry", "reversed_entry_id"),
    )

    entry_number: Mapped[str] = mapped_column(String(50), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    entry_type: Mapped[JournalEntryType] = mapped_column(
        EnumString(JournalEntryType),
        default=JournalEntryType.MANUAL,
        nullable=False,
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    store_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Ledger-line context copied onto every line at posting
    transaction_type: Mapped[TransactionType] = mapped_column(
        EnumString(TransactionType),
        default=TransactionType.JOURNAL,
        nullable=False,
    )
    customer_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        EnumString(PaymentMethod),
        nullable=True,
    )

    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    status: Mapped[JournalEntryStatus] = mapped_column(
        EnumString(JournalEntryStatus),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    approval_required: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_reversal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Reversal entries point at the entry they cancel
    reversed_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    reversal_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_no",
        lazy="selectin",
    )

    reversed_entry: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversed_entry_id],
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} status={self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def is_reversed(self) -> bool:
        return self.status == JournalEntryStatus.REVERSED

    @property
    def line_debit_sum(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0"))

    @property
    def line_credit_sum(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        """Exact read-side check that debits equal credits."""
        return self.line_debit_sum == self.line_credit_sum


class JournalLine(TrackedBase):
    """
    One line of a journal entry.

    Contract:
        Amounts are non-negative and quantized to two places.  A line may
        carry a debit, a credit, or (rarely) both; posting writes one
        ledger line per nonzero side.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_no", name="uq_journal_line_no"),
        Index("idx_journal_line_entry", "journal_entry_id"),
        Index("idx_journal_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    account_code: Mapped[str] = mapped_column(String(50), nullable=False)

    account_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    sub_account: Mapped[str | None] = mapped_column(String(100), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    cost_center: Mapped[str | None] = mapped_column(String(50), nullable=True)
    project: Mapped[str | None] = mapped_column(String(50), nullable=True)
    department: Mapped[str | None] = mapped_column(String(50), nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<JournalLine {self.line_no} {self.account_code} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )
