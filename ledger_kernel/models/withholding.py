"""
Module: ledger_kernel.models.withholding
Responsibility: ORM persistence for tax-deducted-at-source (TDS) records
    attached to vendor transactions.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - tds_number is unique.
    - tds_amount, net_amount and the due dates are derived once, when the
      record is created, and never recomputed.  A changed gross amount
      means a new record.
    - Financial fields are frozen once status reaches DEPOSITED
      (db/immutability.py).

Audit relevance:
    The record is a derived, non-authoritative view: the withheld amount
    also lives in the ledger as a TDS payable credit.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import EnumString


class WithholdingStatus(str, Enum):
    PENDING = "pending"
    DEDUCTED = "deducted"
    DEPOSITED = "deposited"
    RETURN_FILED = "return_filed"
    CANCELLED = "cancelled"


class SourceTransactionType(str, Enum):
    PURCHASE = "purchase"
    EXPENSE = "expense"
    SALARY = "salary"
    COMMISSION = "commission"
    RENT = "rent"
    PROFESSIONAL_FEES = "professional_fees"


class ReturnQuarter(str, Enum):
    Q1 = "Q1"
    Q2 = "Q2"
    Q3 = "Q3"
    Q4 = "Q4"


# Fields that may not change once the withheld amount has been deposited
WITHHOLDING_FINANCIAL_FIELDS = frozenset({
    "gross_amount",
    "tds_rate",
    "tds_amount",
    "net_amount",
    "tds_section",
    "payment_date",
    "deposit_due_date",
    "return_due_date",
    "challan_number",
    "challan_date",
    "bsr_code",
})


class WithholdingRecord(TrackedBase):
    """
    One withholding deduction on one vendor transaction.

    Guarantees:
        - net_amount == gross_amount - tds_amount.
        - due_date == deposit_due_date.
    """

    __tablename__ = "withholding_records"

    __table_args__ = (
        UniqueConstraint("tds_number", name="uq_withholding_tds_number"),
        Index("idx_withholding_store_date", "store_id", "tds_date"),
        Index("idx_withholding_vendor", "vendor_id"),
        Index("idx_withholding_status", "status"),
        Index("idx_withholding_period", "return_period"),
    )

    tds_number: Mapped[str] = mapped_column(String(50), nullable=False)

    tds_date: Mapped[date] = mapped_column(Date, nullable=False)

    store_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    vendor_id: Mapped[str] = mapped_column(String(50), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor_pan: Mapped[str | None] = mapped_column(String(10), nullable=True)

    source_transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)

    source_transaction_type: Mapped[SourceTransactionType] = mapped_column(
        EnumString(SourceTransactionType),
        nullable=False,
    )

    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    gross_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    tds_section: Mapped[str] = mapped_column(String(10), nullable=False)

    section_description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    tds_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)

    tds_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    net_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)

    deposit_due_date: Mapped[date] = mapped_column(Date, nullable=False)

    return_due_date: Mapped[date] = mapped_column(Date, nullable=False)

    return_quarter: Mapped[ReturnQuarter] = mapped_column(
        EnumString(ReturnQuarter, length=2),
        nullable=False,
    )

    return_year: Mapped[int] = mapped_column(Integer, nullable=False)

    # e.g. "2024-Q1"
    return_period: Mapped[str] = mapped_column(String(10), nullable=False)

    status: Mapped[WithholdingStatus] = mapped_column(
        EnumString(WithholdingStatus),
        default=WithholdingStatus.PENDING,
        nullable=False,
    )

    challan_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    challan_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    bsr_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    acknowledgement_number: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )

    journal_entry_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<WithholdingRecord {self.tds_number} {self.tds_section} {self.status}>"

    @property
    def due_date(self) -> date:
        return self.deposit_due_date
