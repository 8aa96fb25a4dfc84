"""
Module: ledger_kernel.selectors.withholding_selector
Responsibility: Read-only queries over withholding records and the
    gross / withheld / net summary used by the poster and the dashboard.
Architecture position: Kernel > Selectors.  May import from models/ and db/.
    MUST NOT import from services/.

Invariants enforced:
    - CANCELLED records never count toward a summary.
    - Date filters apply to tds_date and are inclusive.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.models.withholding import WithholdingRecord, WithholdingStatus
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class WithholdingSummary:
    """Aggregate of withholding records for a store and period."""

    record_count: int
    total_gross: Decimal
    total_withheld: Decimal
    total_net: Decimal
    pending_deposit: Decimal
    store_id: str | None = None
    from_date: date | None = None
    to_date: date | None = None


class WithholdingSelector(BaseSelector):
    """Selector for withholding record queries."""

    def get_record(self, tds_number: str) -> WithholdingRecord | None:
        return self.session.execute(
            select(WithholdingRecord).where(WithholdingRecord.tds_number == tds_number)
        ).scalar_one_or_none()

    def _filtered(self, stmt, store_id, from_date, to_date):
        if store_id is not None:
            stmt = stmt.where(WithholdingRecord.store_id == store_id)
        if from_date is not None:
            stmt = stmt.where(WithholdingRecord.tds_date >= from_date)
        if to_date is not None:
            stmt = stmt.where(WithholdingRecord.tds_date <= to_date)
        return stmt

    def list_records(
        self,
        store_id: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
        status: WithholdingStatus | None = None,
        vendor_id: str | None = None,
        tds_section: str | None = None,
    ) -> list[WithholdingRecord]:
        stmt = self._filtered(select(WithholdingRecord), store_id, from_date, to_date)
        if status is not None:
            stmt = stmt.where(WithholdingRecord.status == status)
        if vendor_id is not None:
            stmt = stmt.where(WithholdingRecord.vendor_id == vendor_id)
        if tds_section is not None:
            stmt = stmt.where(WithholdingRecord.tds_section == tds_section)
        stmt = stmt.order_by(WithholdingRecord.tds_date, WithholdingRecord.tds_number)
        return list(self.session.execute(stmt).scalars().all())

    def summary(
        self,
        store_id: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> WithholdingSummary:
        """Totals over every non-cancelled record in the period."""
        stmt = select(
            func.count(WithholdingRecord.id),
            func.coalesce(func.sum(WithholdingRecord.gross_amount), ZERO),
            func.coalesce(func.sum(WithholdingRecord.tds_amount), ZERO),
            func.coalesce(func.sum(WithholdingRecord.net_amount), ZERO),
        ).where(WithholdingRecord.status != WithholdingStatus.CANCELLED)
        count, gross, withheld, net = self.session.execute(
            self._filtered(stmt, store_id, from_date, to_date)
        ).one()

        pending_stmt = select(
            func.coalesce(func.sum(WithholdingRecord.tds_amount), ZERO)
        ).where(
            WithholdingRecord.status.in_(
                (WithholdingStatus.PENDING, WithholdingStatus.DEDUCTED)
            )
        )
        pending = self.session.execute(
            self._filtered(pending_stmt, store_id, from_date, to_date)
        ).scalar_one()

        return WithholdingSummary(
            record_count=count,
            total_gross=round_money(Decimal(str(gross))),
            total_withheld=round_money(Decimal(str(withheld))),
            total_net=round_money(Decimal(str(net))),
            pending_deposit=round_money(Decimal(str(pending))),
            store_id=store_id,
            from_date=from_date,
            to_date=to_date,
        )
