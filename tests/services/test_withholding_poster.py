"""
Tests for WithholdingPoster.

Tests cover:
- Derived figures: withheld, net, due dates and return period
- Section lookup and explicit rate override
- Posting: TDS expense debit, TDS payable credit
- Status flow PENDING -> DEDUCTED -> DEPOSITED -> RETURN_FILED
- Illegal transitions and cancellation with reversal
- Summary totals
- Audit trail and late-deposit warning
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import WithholdingRequest
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    UnknownWithholdingSectionError,
    WithholdingRecordNotFoundError,
    WithholdingStateError,
)
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.journal import JournalEntryStatus, JournalEntryType
from ledger_kernel.models.withholding import (
    ReturnQuarter,
    SourceTransactionType,
    WithholdingStatus,
)

AS_OF = date(2024, 3, 31)


def _request(**overrides) -> WithholdingRequest:
    data = dict(
        vendor_id="V100",
        vendor_name="Acme Consulting",
        source_transaction_id="PUR-0042",
        source_transaction_type=SourceTransactionType.PROFESSIONAL_FEES,
        gross_amount=Decimal("10000"),
        tds_section="194J",
        payment_date=date(2024, 3, 15),
        vendor_pan="ABCDE1234F",
        store_id="S1",
    )
    data.update(overrides)
    return WithholdingRequest(**data)


@pytest.fixture
def deducted(withholding_poster, standard_accounts, test_actor_id):
    return withholding_poster.create_record(_request(), test_actor_id)


# =========================================================================
# Creation
# =========================================================================


class TestCreateRecord:

    def test_reference_figures(self, deducted):
        assert deducted.tds_amount == Decimal("1000.00")
        assert deducted.net_amount == Decimal("9000.00")
        assert deducted.tds_rate == Decimal("10")
        assert deducted.deposit_due_date == date(2024, 4, 7)
        assert deducted.return_due_date == date(2024, 4, 30)
        assert deducted.return_quarter == ReturnQuarter.Q1
        assert deducted.return_period == "2024-Q1"
        assert deducted.section_description == "Professional or technical fees"

    def test_number_and_status(self, deducted):
        assert deducted.tds_number == "TDS20240315-0001"
        assert deducted.tds_date == date(2024, 3, 15)
        assert deducted.status == WithholdingStatus.DEDUCTED
        assert deducted.journal_entry_number is not None

    def test_explicit_tds_date(self, withholding_poster, standard_accounts, test_actor_id):
        record = withholding_poster.create_record(
            _request(tds_date=date(2024, 3, 20)), test_actor_id
        )
        assert record.tds_number == "TDS20240320-0001"

    def test_posting(self, deducted, journal_engine, account_registry):
        entry = journal_engine.get_entry(deducted.journal_entry_number)

        assert entry.status == JournalEntryStatus.POSTED
        assert entry.entry_type == JournalEntryType.WITHHOLDING
        assert entry.reference_number == deducted.tds_number
        assert entry.reference_type == "tds"
        assert entry.vendor_id == "V100"
        assert account_registry.get_balance("TDS_EXPENSE", AS_OF) == Decimal("1000.00")
        assert account_registry.get_balance("TDS_PAYABLE", AS_OF) == Decimal("1000.00")

    def test_rate_override(self, withholding_poster, standard_accounts, test_actor_id):
        record = withholding_poster.create_record(
            _request(tds_rate=Decimal("2")), test_actor_id
        )
        assert record.tds_amount == Decimal("200.00")
        assert record.net_amount == Decimal("9800.00")

    def test_section_lookup_case_insensitive(self, withholding_poster, standard_accounts, test_actor_id):
        record = withholding_poster.create_record(
            _request(tds_section="194c"), test_actor_id
        )
        assert record.tds_section == "194C"
        assert record.tds_amount == Decimal("100.00")

    def test_unknown_section(self, withholding_poster, standard_accounts, test_actor_id):
        with pytest.raises(UnknownWithholdingSectionError):
            withholding_poster.create_record(_request(tds_section="999"), test_actor_id)

    def test_negative_gross_rejected(self, withholding_poster, standard_accounts, test_actor_id):
        with pytest.raises(ValueError):
            withholding_poster.create_record(_request(gross_amount=Decimal("-1")), test_actor_id)

    def test_zero_withheld_posts_nothing(self, withholding_poster, journal_selector, standard_accounts, test_actor_id):
        record = withholding_poster.create_record(_request(tds_rate=Decimal("0")), test_actor_id)

        assert record.status == WithholdingStatus.DEDUCTED
        assert record.tds_amount == Decimal("0.00")
        assert record.journal_entry_number is None
        assert journal_selector.count_entries() == 0

    def test_missing_posting_account_leaves_nothing(
        self, withholding_poster, create_account, test_actor_id
    ):
        create_account("TDS_EXPENSE", "TDS Expense", AccountType.EXPENSE)

        with pytest.raises(AccountNotFoundError):
            withholding_poster.create_record(_request(), test_actor_id)
        assert withholding_poster.summary().record_count == 0

    def test_audited(self, deducted, auditor_service):
        trace = auditor_service.get_trace("WithholdingRecord", deducted.tds_number)
        assert trace.actions == (
            AuditAction.WITHHOLDING_RECORDED,
            AuditAction.WITHHOLDING_STATUS_CHANGED,
        )
        assert trace.entries[0].to_state == "pending"
        assert (trace.entries[1].from_state, trace.entries[1].to_state) == ("pending", "deducted")


# =========================================================================
# Status flow
# =========================================================================


class TestStatusFlow:

    def test_deposit_then_file(self, withholding_poster, deducted, test_actor_id):
        record = withholding_poster.mark_deposited(
            deducted.tds_number, test_actor_id,
            challan_number="CH-1", challan_date=date(2024, 4, 5), bsr_code="0510002",
        )
        assert record.status == WithholdingStatus.DEPOSITED
        assert record.challan_number == "CH-1"
        assert record.bsr_code == "0510002"

        record = withholding_poster.mark_return_filed(
            deducted.tds_number, test_actor_id, acknowledgement_number="ACK-9"
        )
        assert record.status == WithholdingStatus.RETURN_FILED
        assert record.acknowledgement_number == "ACK-9"

    def test_late_deposit_warns(self, withholding_poster, deducted, test_actor_id, captured_logs):
        withholding_poster.mark_deposited(
            deducted.tds_number, test_actor_id,
            challan_number="CH-1", challan_date=date(2024, 4, 10),
        )
        late = [r for r in captured_logs() if r["message"] == "withholding_deposited_late"]
        assert len(late) == 1
        assert late[0]["deposit_due_date"] == "2024-04-07"

    def test_file_before_deposit_rejected(self, withholding_poster, deducted, test_actor_id):
        with pytest.raises(WithholdingStateError) as exc_info:
            withholding_poster.mark_return_filed(deducted.tds_number, test_actor_id, "ACK")
        assert exc_info.value.current_state == "deducted"
        assert exc_info.value.target_state == "return_filed"

    def test_deposit_twice_rejected(self, withholding_poster, deducted, test_actor_id):
        withholding_poster.mark_deposited(
            deducted.tds_number, test_actor_id, "CH-1", date(2024, 4, 5)
        )
        with pytest.raises(WithholdingStateError):
            withholding_poster.mark_deposited(
                deducted.tds_number, test_actor_id, "CH-2", date(2024, 4, 6)
            )

    def test_cancel_after_deposit_rejected(self, withholding_poster, deducted, test_actor_id):
        withholding_poster.mark_deposited(
            deducted.tds_number, test_actor_id, "CH-1", date(2024, 4, 5)
        )
        with pytest.raises(WithholdingStateError):
            withholding_poster.cancel(deducted.tds_number, "mistake", test_actor_id)

    def test_unknown_record(self, withholding_poster, test_actor_id):
        with pytest.raises(WithholdingRecordNotFoundError):
            withholding_poster.mark_deposited("TDS-NOPE", test_actor_id, "CH", date(2024, 4, 1))


class TestCancel:

    def test_cancel_reverses_posting(self, withholding_poster, journal_engine, account_registry, deducted, test_actor_id):
        record = withholding_poster.cancel(deducted.tds_number, "Invoice withdrawn", test_actor_id)

        assert record.status == WithholdingStatus.CANCELLED
        assert record.cancellation_reason == "Invoice withdrawn"
        original = journal_engine.get_entry(deducted.journal_entry_number)
        assert original.status == JournalEntryStatus.REVERSED
        assert account_registry.get_balance("TDS_PAYABLE", AS_OF) == Decimal("0")
        assert account_registry.get_balance("TDS_EXPENSE", AS_OF) == Decimal("0")

    def test_cancel_twice_rejected(self, withholding_poster, deducted, test_actor_id):
        withholding_poster.cancel(deducted.tds_number, "x", test_actor_id)
        with pytest.raises(WithholdingStateError):
            withholding_poster.cancel(deducted.tds_number, "x", test_actor_id)

    def test_cancel_without_posting(self, withholding_poster, standard_accounts, test_actor_id):
        record = withholding_poster.create_record(_request(tds_rate=Decimal("0")), test_actor_id)
        record = withholding_poster.cancel(record.tds_number, "no tax", test_actor_id)
        assert record.status == WithholdingStatus.CANCELLED


# =========================================================================
# Summary
# =========================================================================


class TestSummary:

    def test_totals_exclude_cancelled(self, withholding_poster, standard_accounts, test_actor_id):
        first = withholding_poster.create_record(_request(), test_actor_id)
        withholding_poster.create_record(
            _request(gross_amount=Decimal("5000"), source_transaction_id="PUR-0043"),
            test_actor_id,
        )
        cancelled = withholding_poster.create_record(
            _request(gross_amount=Decimal("700"), source_transaction_id="PUR-0044"),
            test_actor_id,
        )
        withholding_poster.cancel(cancelled.tds_number, "dup", test_actor_id)
        withholding_poster.mark_deposited(first.tds_number, test_actor_id, "CH-1", date(2024, 4, 5))

        summary = withholding_poster.summary(store_id="S1")

        assert summary.record_count == 2
        assert summary.total_gross == Decimal("15000.00")
        assert summary.total_withheld == Decimal("1500.00")
        assert summary.total_net == Decimal("13500.00")
        assert summary.pending_deposit == Decimal("500.00")

    def test_date_and_store_filters(self, withholding_poster, standard_accounts, test_actor_id):
        withholding_poster.create_record(_request(), test_actor_id)
        withholding_poster.create_record(
            _request(payment_date=date(2024, 4, 2), source_transaction_id="PUR-2"), test_actor_id
        )

        march = withholding_poster.summary(from_date=date(2024, 3, 1), to_date=date(2024, 3, 31))
        other_store = withholding_poster.summary(store_id="S2")

        assert march.record_count == 1
        assert march.total_withheld == Decimal("1000.00")
        assert other_store.record_count == 0
        assert other_store.total_gross == Decimal("0.00")
