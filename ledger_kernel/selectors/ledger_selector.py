"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger line queries and debit/credit aggregation.
    The ledger is the only source of balances; nothing is stored.
Architecture position: Kernel > Selectors.  May import from models/, db/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - query() results are always ordered by transaction_date ascending,
      ties broken by transaction_id.
    - Aggregations only count balance-bearing lines (CONFIRMED, REVERSED);
      PENDING and CANCELLED lines never contribute.
    - All totals are Decimal, quantized to two places.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.dtos import LedgerQuery
from ledger_kernel.models.account import Account
from ledger_kernel.models.ledger import BALANCE_BEARING_STATUSES, LedgerLine
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountTotals:
    """Debit and credit totals of one account's balance-bearing lines."""

    account_id: UUID | None
    debit_total: Decimal
    credit_total: Decimal
    line_count: int

    @property
    def net(self) -> Decimal:
        """Debit-positive movement."""
        return self.debit_total - self.credit_total


class LedgerSelector(BaseSelector):
    """
    Selector for ledger lines and their aggregates.

    Contract:
        query() returns LedgerLine rows (read-only use).  The totals
        methods return frozen AccountTotals.
    """

    def query(self, criteria: LedgerQuery | None = None) -> list[LedgerLine]:
        """
        Ledger lines matching every supplied filter.

        With no ``statuses`` filter, lines of every status are returned.
        Date bounds are inclusive.
        """
        criteria = criteria or LedgerQuery()
        stmt = select(LedgerLine)

        if criteria.account_code is not None:
            stmt = stmt.where(LedgerLine.account_code == criteria.account_code)
        if criteria.from_date is not None:
            stmt = stmt.where(LedgerLine.transaction_date >= criteria.from_date)
        if criteria.to_date is not None:
            stmt = stmt.where(LedgerLine.transaction_date <= criteria.to_date)
        if criteria.transaction_type is not None:
            stmt = stmt.where(LedgerLine.transaction_type == criteria.transaction_type)
        if criteria.statuses:
            stmt = stmt.where(LedgerLine.status.in_(criteria.statuses))
        if criteria.reference_number is not None:
            stmt = stmt.where(LedgerLine.reference_number == criteria.reference_number)
        if criteria.store_id is not None:
            stmt = stmt.where(LedgerLine.store_id == criteria.store_id)
        if criteria.vendor_id is not None:
            stmt = stmt.where(LedgerLine.vendor_id == criteria.vendor_id)
        if criteria.customer_id is not None:
            stmt = stmt.where(LedgerLine.customer_id == criteria.customer_id)

        stmt = stmt.order_by(LedgerLine.transaction_date, LedgerLine.transaction_id)

        if criteria.offset:
            stmt = stmt.offset(criteria.offset)
        if criteria.limit is not None:
            stmt = stmt.limit(criteria.limit)

        return list(self.session.execute(stmt).scalars().all())

    def lines_for_reference(self, reference_number: str) -> list[LedgerLine]:
        return self.query(LedgerQuery(reference_number=reference_number))

    def _aggregate(
        self,
        as_of_date: date | None,
        from_date: date | None,
        store_id: str | None,
    ):
        stmt = select(
            LedgerLine.account_id,
            func.coalesce(func.sum(LedgerLine.debit_amount), ZERO).label("debit_total"),
            func.coalesce(func.sum(LedgerLine.credit_amount), ZERO).label("credit_total"),
            func.count(LedgerLine.id).label("line_count"),
        ).where(LedgerLine.status.in_(BALANCE_BEARING_STATUSES))

        if as_of_date is not None:
            stmt = stmt.where(LedgerLine.transaction_date <= as_of_date)
        if from_date is not None:
            stmt = stmt.where(LedgerLine.transaction_date >= from_date)
        if store_id is not None:
            stmt = stmt.where(LedgerLine.store_id == store_id)

        return stmt.group_by(LedgerLine.account_id)

    @staticmethod
    def _to_totals(row) -> AccountTotals:
        return AccountTotals(
            account_id=row.account_id,
            debit_total=round_money(Decimal(str(row.debit_total))),
            credit_total=round_money(Decimal(str(row.credit_total))),
            line_count=row.line_count,
        )

    def account_totals(
        self,
        account_id: UUID,
        as_of_date: date | None = None,
        from_date: date | None = None,
        store_id: str | None = None,
    ) -> AccountTotals:
        """Totals for one account over the inclusive date range."""
        stmt = self._aggregate(as_of_date, from_date, store_id).where(
            LedgerLine.account_id == account_id
        )
        row = self.session.execute(stmt).one_or_none()
        if row is None:
            return AccountTotals(account_id=account_id, debit_total=ZERO, credit_total=ZERO, line_count=0)
        return self._to_totals(row)

    def totals_by_account(
        self,
        as_of_date: date | None = None,
        from_date: date | None = None,
        store_id: str | None = None,
    ) -> dict[UUID, AccountTotals]:
        """Totals for every account with at least one balance-bearing line."""
        rows = self.session.execute(self._aggregate(as_of_date, from_date, store_id)).all()
        return {row.account_id: self._to_totals(row) for row in rows}

    def has_lines(self, account_id: UUID) -> bool:
        """True when any ledger line, of any status, references the account."""
        stmt = select(LedgerLine.id).where(LedgerLine.account_id == account_id).limit(1)
        return self.session.execute(stmt).first() is not None

    def first_used_type(self, account: Account):
        """Account type snapshotted on the account's earliest ledger line."""
        stmt = (
            select(LedgerLine.account_type)
            .where(LedgerLine.account_id == account.id)
            .order_by(LedgerLine.created_at, LedgerLine.transaction_id)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()
