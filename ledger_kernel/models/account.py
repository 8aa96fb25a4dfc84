"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every ledger line and journal line.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique (uq_account_code).
    - account_type is frozen once ledger lines reference the account
      (AccountRegistry check plus the listener in db/immutability.py).
    - level is 1 for roots and parent.level + 1 otherwise, never above 5.
    - Accounts are deactivated, never deleted, once they carry history.

Audit relevance:
    Changing an account's type after posting would silently move historical
    balances between statement sections, so the type is locked.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
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

MAX_ACCOUNT_LEVEL = 5


class AccountType(str, Enum):
    """Closed set of account types in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"
    COST_OF_GOODS_SOLD = "cost_of_goods_sold"
    OTHER_INCOME = "other_income"
    OTHER_EXPENSE = "other_expense"


class AccountSubtype(str, Enum):
    """Optional finer classification within an account type."""

    CURRENT_ASSET = "current_asset"
    FIXED_ASSET = "fixed_asset"
    INVESTMENT = "investment"
    INTANGIBLE_ASSET = "intangible_asset"
    CURRENT_LIABILITY = "current_liability"
    LONG_TERM_LIABILITY = "long_term_liability"
    PROVISION = "provision"
    OWNERS_EQUITY = "owners_equity"
    RETAINED_EARNINGS = "retained_earnings"
    RESERVES = "reserves"
    SALES_REVENUE = "sales_revenue"
    SERVICE_REVENUE = "service_revenue"
    OTHER_REVENUE = "other_revenue"
    OPERATING_EXPENSE = "operating_expense"
    ADMINISTRATIVE_EXPENSE = "administrative_expense"
    SELLING_EXPENSE = "selling_expense"
    FINANCIAL_EXPENSE = "financial_expense"
    TAX_EXPENSE = "tax_expense"


class NormalBalance(str, Enum):
    """Debit or credit side.  Also used for the opening balance side."""

    DEBIT = "debit"
    CREDIT = "credit"


class Account(TrackedBase):
    """
    A single node in the chart of accounts.

    Contract:
        Account.code is globally unique.  Once a ledger line references the
        account, account_type MUST NOT change.

    Guarantees:
        - opening_balance is non-negative; its sign comes from
          opening_balance_side.
        - parent_id, when set, references another Account.

    Non-goals:
        - Balances are not stored here; they are derived from ledger lines
          by the balance calculator.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_active", "is_active"),
        Index("idx_account_parent", "parent_id"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(
        EnumString(AccountType),
        nullable=False,
    )

    account_subtype: Mapped[AccountSubtype | None] = mapped_column(
        EnumString(AccountSubtype),
        nullable=True,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # Depth in the tree, 1 = root
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_system_account: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    is_cash_account: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_bank_account: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    opening_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    opening_balance_side: Mapped[NormalBalance] = mapped_column(
        EnumString(NormalBalance),
        default=NormalBalance.DEBIT,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        back_populates="children",
    )

    children: Mapped[list["Account"]] = relationship(
        back_populates="parent",
        order_by="Account.code",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        from ledger_kernel.domain.account_types import normal_balance_for

        return normal_balance_for(self.account_type)

    @property
    def signed_opening_balance(self) -> Decimal:
        """Opening balance as a debit-positive figure."""
        if self.opening_balance_side == NormalBalance.CREDIT:
            return -self.opening_balance
        return self.opening_balance
