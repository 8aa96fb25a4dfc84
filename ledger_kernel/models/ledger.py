"""
Module: ledger_kernel.models.ledger
Responsibility: ORM persistence for ledger lines -- the atomic debit/credit
    postings every balance and report is aggregated from.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - transaction_id is unique (uq_ledger_transaction_id).
    - debit_amount >= 0, credit_amount >= 0 (CHECK constraints).
    - Once CONFIRMED, amounts never change; the only status change allowed
      is CONFIRMED -> REVERSED (db/immutability.py).
    - Ledger lines are never deleted.

Failure modes:
    - IntegrityError on duplicate transaction_id or negative amounts.
    - ImmutabilityViolationError on UPDATE of amounts or DELETE.

Audit relevance:
    account_type is snapshotted on every line so a later change to the
    account can be detected against its first use.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import EnumString
from ledger_kernel.models.account import AccountType

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class TransactionType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    EXPENSE = "expense"
    PAYMENT = "payment"
    RECEIPT = "receipt"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    JOURNAL = "journal"


class LedgerLineStatus(str, Enum):
    """Status of a ledger line.

    Only CONFIRMED and REVERSED lines carry balance.  A REVERSED line stays
    in history and is offset by the reversal entry's CONFIRMED lines.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REVERSED = "reversed"


BALANCE_BEARING_STATUSES = (LedgerLineStatus.CONFIRMED, LedgerLineStatus.REVERSED)


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    UPI = "upi"
    OTHER = "other"


class LedgerLine(TrackedBase):
    """
    One immutable debit or credit posting against one account.

    Contract:
        Exactly one of debit_amount/credit_amount is nonzero, or both are
        zero for a CANCELLED (void) line.  Written only through LedgerStore.

    Guarantees:
        - account_code mirrors the referenced account's code.
        - reference_number carries the journal entry number for lines
          materialized by posting.
    """

    __tablename__ = "ledger_lines"

    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_ledger_transaction_id"),
        CheckConstraint("debit_amount >= 0", name="ck_ledger_debit_non_negative"),
        CheckConstraint("credit_amount >= 0", name="ck_ledger_credit_non_negative"),
        Index("idx_ledger_account_date", "account_id", "transaction_date"),
        Index("idx_ledger_reference", "reference_number"),
        Index("idx_ledger_status", "status"),
        Index("idx_ledger_store_date", "store_id", "transaction_date"),
    )

    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(
        EnumString(TransactionType),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    account_code: Mapped[str] = mapped_column(String(50), nullable=False)

    # Account type at the time of posting
    account_type: Mapped[AccountType] = mapped_column(
        EnumString(AccountType),
        nullable=False,
    )

    sub_account: Mapped[str | None] = mapped_column(String(100), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    status: Mapped[LedgerLineStatus] = mapped_column(
        EnumString(LedgerLineStatus),
        default=LedgerLineStatus.CONFIRMED,
        nullable=False,
    )

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    store_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    customer_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        EnumString(PaymentMethod),
        nullable=True,
    )

    cost_center: Mapped[str | None] = mapped_column(String(50), nullable=True)
    project: Mapped[str | None] = mapped_column(String(50), nullable=True)
    department: Mapped[str | None] = mapped_column(String(50), nullable=True)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    reversal_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    account: Mapped["Account"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<LedgerLine {self.transaction_id} {self.account_code} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )

    @property
    def net_amount(self) -> Decimal:
        """Debit-positive signed amount."""
        return self.debit_amount - self.credit_amount

    @property
    def is_balance_bearing(self) -> bool:
        return self.status in BALANCE_BEARING_STATUSES
