"""
DTOs -- immutable inbound and outbound data for the ledger kernel.

Responsibility:
    Inbound specs (accounts, ledger lines, journal entries, expense and
    withholding events, ledger queries) that collaborating workflows hand
    to the services, and the outbound records the services return
    (transition records for the external audit log, posting and reversal
    results).

Architecture position:
    Kernel > Domain.  No ORM imports except the enumerations; services
    translate between these objects and models.

Invariants enforced:
    Specs only normalize (str/int amounts become Decimal).  Validation that
    needs the chart of accounts, and raises typed errors, happens in the
    services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledger_kernel.models.account import AccountSubtype, AccountType, NormalBalance
from ledger_kernel.models.journal import JournalEntryStatus, JournalEntryType
from ledger_kernel.models.ledger import LedgerLineStatus, PaymentMethod, TransactionType
from ledger_kernel.models.withholding import SourceTransactionType


def _as_decimal(value: Decimal | int | str) -> Decimal:
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    return value if isinstance(value, Decimal) else Decimal(value)


# =============================================================================
# Inbound specs
# =============================================================================


@dataclass(frozen=True)
class AccountSpec:
    """Administrator request to add an account to the chart."""

    code: str
    name: str
    account_type: AccountType
    account_subtype: AccountSubtype | None = None
    parent_code: str | None = None
    opening_balance: Decimal = Decimal("0")
    opening_balance_side: NormalBalance = NormalBalance.DEBIT
    is_system_account: bool = False
    is_cash_account: bool = False
    is_bank_account: bool = False
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "opening_balance", _as_decimal(self.opening_balance))
        if self.opening_balance < 0:
            raise ValueError("Opening balance must be non-negative; use the side")


@dataclass(frozen=True)
class LedgerLineSpec:
    """One posting to append to the ledger store."""

    account_code: str
    transaction_date: date
    transaction_type: TransactionType
    debit_amount: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")
    status: LedgerLineStatus = LedgerLineStatus.CONFIRMED
    transaction_id: str | None = None
    sub_account: str | None = None
    description: str | None = None
    reference_number: str | None = None
    reference_type: str | None = None
    store_id: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    vendor_id: str | None = None
    vendor_name: str | None = None
    payment_method: PaymentMethod | None = None
    cost_center: str | None = None
    project: str | None = None
    department: str | None = None
    journal_entry_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit_amount", _as_decimal(self.debit_amount))
        object.__setattr__(self, "credit_amount", _as_decimal(self.credit_amount))


@dataclass(frozen=True)
class JournalLineSpec:
    """One line of a journal entry draft."""

    account_code: str
    debit_amount: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")
    description: str | None = None
    sub_account: str | None = None
    cost_center: str | None = None
    project: str | None = None
    department: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit_amount", _as_decimal(self.debit_amount))
        object.__setattr__(self, "credit_amount", _as_decimal(self.credit_amount))

    @classmethod
    def debit(cls, account_code: str, amount: Decimal | int | str, **kwargs: Any) -> JournalLineSpec:
        return cls(account_code=account_code, debit_amount=_as_decimal(amount), **kwargs)

    @classmethod
    def credit(cls, account_code: str, amount: Decimal | int | str, **kwargs: Any) -> JournalLineSpec:
        return cls(account_code=account_code, credit_amount=_as_decimal(amount), **kwargs)

    def swapped(self) -> JournalLineSpec:
        """The same line with debit and credit exchanged."""
        return JournalLineSpec(
            account_code=self.account_code,
            debit_amount=self.credit_amount,
            credit_amount=self.debit_amount,
            description=self.description,
            sub_account=self.sub_account,
            cost_center=self.cost_center,
            project=self.project,
            department=self.department,
        )


@dataclass(frozen=True)
class JournalEntrySpec:
    """A journal entry as submitted by a calling workflow."""

    entry_date: date
    description: str
    lines: tuple[JournalLineSpec, ...]
    entry_type: JournalEntryType = JournalEntryType.MANUAL
    approval_required: bool = True
    reference_number: str | None = None
    reference_type: str | None = None
    store_id: str | None = None
    notes: str | None = None
    transaction_type: TransactionType = TransactionType.JOURNAL
    # Counterparty details copied onto every ledger line at posting
    customer_id: str | None = None
    customer_name: str | None = None
    vendor_id: str | None = None
    vendor_name: str | None = None
    payment_method: PaymentMethod | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class ExpenseEvent:
    """An approved expense from the expense workflow."""

    expense_number: str
    expense_date: date
    category: str
    amount: Decimal
    payment_method: PaymentMethod
    description: str
    tax_amount: Decimal = Decimal("0")
    store_id: str | None = None
    vendor_id: str | None = None
    vendor_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _as_decimal(self.amount))
        object.__setattr__(self, "tax_amount", _as_decimal(self.tax_amount))

    @property
    def total_amount(self) -> Decimal:
        return self.amount + self.tax_amount


@dataclass(frozen=True)
class WithholdingRequest:
    """A vendor transaction on which tax is deducted at source."""

    vendor_id: str
    vendor_name: str
    source_transaction_id: str
    source_transaction_type: SourceTransactionType
    gross_amount: Decimal
    tds_section: str
    payment_date: date
    tds_rate: Decimal | None = None
    tds_date: date | None = None
    vendor_pan: str | None = None
    invoice_number: str | None = None
    invoice_date: date | None = None
    payment_method: str | None = None
    store_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "gross_amount", _as_decimal(self.gross_amount))
        if self.tds_rate is not None:
            object.__setattr__(self, "tds_rate", _as_decimal(self.tds_rate))


@dataclass(frozen=True)
class LedgerQuery:
    """Filters for ledger line retrieval.  All fields are optional."""

    account_code: str | None = None
    from_date: date | None = None
    to_date: date | None = None
    transaction_type: TransactionType | None = None
    statuses: tuple[LedgerLineStatus, ...] | None = None
    reference_number: str | None = None
    store_id: str | None = None
    vendor_id: str | None = None
    customer_id: str | None = None
    limit: int | None = None
    offset: int = 0


# =============================================================================
# Outbound records
# =============================================================================


@dataclass(frozen=True)
class TransitionRecord:
    """
    Audit record handed to the external audit log on every state change.

    Contract:
        One record per successful transition, emitted after the change is
        flushed.  from_state is None for creation.
    """

    entity_type: str
    entity_key: str
    action: str
    actor_id: UUID
    from_state: str | None
    to_state: str | None
    occurred_at: datetime
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def entry_number(self) -> str:
        return self.entity_key


@dataclass(frozen=True)
class PostingResult:
    """
    Synchronous result for calling workflows.

    Either success with the posted entry number, or a typed failure with
    the error code and message.
    """

    success: bool
    entry_number: str | None = None
    status: JournalEntryStatus | None = None
    error_code: str | None = None
    message: str | None = None

    @classmethod
    def posted(cls, entry_number: str) -> PostingResult:
        return cls(success=True, entry_number=entry_number, status=JournalEntryStatus.POSTED)

    @classmethod
    def rejected(
        cls,
        error_code: str,
        message: str,
        entry_number: str | None = None,
        status: JournalEntryStatus | None = None,
    ) -> PostingResult:
        return cls(
            success=False,
            entry_number=entry_number,
            status=status,
            error_code=error_code,
            message=message,
        )

    @property
    def is_success(self) -> bool:
        return self.success


@dataclass(frozen=True)
class ReversalResult:
    """Outcome of a successful reversal."""

    original_entry_number: str
    reversal_entry_number: str
    reversal_entry_id: UUID
    reversed_at: datetime
    reason: str
