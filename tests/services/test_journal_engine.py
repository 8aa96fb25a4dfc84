"""
Tests for the JournalEngine state machine.

Tests cover:
- Draft creation: numbering, line validation, totals
- Line replacement while in DRAFT
- Submit, approve, reject and post transitions (and illegal ones)
- Balance validation and the rounding tolerance
- Posting materializes one ledger line per nonzero side
- Pre-approved fast path and the result-object API
- Optimistic version checks
- Audit trail and structured logs
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import JournalLineSpec
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    ConcurrentModificationError,
    InvalidJournalEntryError,
    InvalidTransitionError,
    JournalEntryNotFoundError,
    NotApprovedError,
    UnbalancedEntryError,
)
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.journal import JournalEntryStatus, JournalEntryType
from ledger_kernel.models.ledger import LedgerLineStatus, PaymentMethod, TransactionType
from tests.conftest import make_entry_spec


def _unbalanced_spec():
    return make_entry_spec([
        JournalLineSpec.debit("CASH", "1000"),
        JournalLineSpec.credit("SALES", "900"),
    ])


# =============================================================================
# Drafts
# =============================================================================


class TestCreateDraft:

    def test_draft_created(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)

        assert entry.status == JournalEntryStatus.DRAFT
        assert entry.entry_number == "JE20240110-0001"
        assert entry.total_debit == Decimal("1000.00")
        assert entry.total_credit == Decimal("1000.00")
        assert [line.line_no for line in entry.lines] == [1, 2]
        assert entry.lines[0].account_name == "Cash"

    def test_numbers_sequence_per_date(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        first = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        second = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        other_day = journal_engine.create_draft(
            make_entry_spec(cash_sale_spec.lines, entry_date=date(2024, 2, 1)), test_actor_id
        )

        assert first.entry_number == "JE20240110-0001"
        assert second.entry_number == "JE20240110-0002"
        assert other_day.entry_number == "JE20240201-0001"

    def test_unbalanced_draft_allowed(self, journal_engine, standard_accounts, test_actor_id):
        entry = journal_engine.create_draft(_unbalanced_spec(), test_actor_id)
        assert entry.status == JournalEntryStatus.DRAFT

    def test_no_lines_rejected(self, journal_engine, standard_accounts, test_actor_id):
        with pytest.raises(InvalidJournalEntryError, match="no lines"):
            journal_engine.create_draft(make_entry_spec([]), test_actor_id)

    def test_zero_line_rejected(self, journal_engine, standard_accounts, test_actor_id):
        with pytest.raises(InvalidJournalEntryError, match="line 2"):
            journal_engine.create_draft(
                make_entry_spec([
                    JournalLineSpec.debit("CASH", "10"),
                    JournalLineSpec("SALES"),
                ]),
                test_actor_id,
            )

    def test_negative_line_rejected(self, journal_engine, standard_accounts, test_actor_id):
        with pytest.raises(InvalidJournalEntryError, match="negative"):
            journal_engine.create_draft(
                make_entry_spec([JournalLineSpec.debit("CASH", "-10")]), test_actor_id
            )

    def test_unknown_account_rejected(self, journal_engine, standard_accounts, test_actor_id):
        with pytest.raises(AccountNotFoundError):
            journal_engine.create_draft(
                make_entry_spec([
                    JournalLineSpec.debit("NOPE", "10"),
                    JournalLineSpec.credit("SALES", "10"),
                ]),
                test_actor_id,
            )

    def test_float_amount_rejected(self):
        with pytest.raises(TypeError):
            JournalLineSpec.debit("CASH", 10.5)

    def test_get_entry_not_found(self, journal_engine):
        with pytest.raises(JournalEntryNotFoundError):
            journal_engine.get_entry("JE-MISSING")


class TestReplaceLines:

    def test_replace_fixes_imbalance(self, journal_engine, standard_accounts, test_actor_id):
        entry = journal_engine.create_draft(_unbalanced_spec(), test_actor_id)

        journal_engine.replace_lines(
            entry.entry_number,
            [
                JournalLineSpec.debit("CASH", "900"),
                JournalLineSpec.credit("SALES", "900"),
            ],
            test_actor_id,
        )
        entry = journal_engine.submit(entry.entry_number, test_actor_id)

        assert entry.status == JournalEntryStatus.PENDING_APPROVAL
        assert entry.total_debit == Decimal("900.00")
        assert len(entry.lines) == 2

    def test_replace_outside_draft_rejected(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        journal_engine.submit(entry.entry_number, test_actor_id)

        with pytest.raises(InvalidTransitionError):
            journal_engine.replace_lines(entry.entry_number, cash_sale_spec.lines, test_actor_id)


# =============================================================================
# Approval flow
# =============================================================================


class TestApprovalFlow:

    def test_full_flow(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id, deterministic_clock):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        number = entry.entry_number

        assert journal_engine.submit(number, test_actor_id).status == JournalEntryStatus.PENDING_APPROVAL
        approved = journal_engine.approve(number, test_actor_id)
        assert approved.status == JournalEntryStatus.APPROVED
        assert approved.approved_by_id == test_actor_id
        assert approved.approved_at == deterministic_clock.now()

        posted = journal_engine.post(number, test_actor_id)
        assert posted.status == JournalEntryStatus.POSTED
        assert posted.posted_by_id == test_actor_id
        assert posted.posted_at is not None

    def test_submit_without_approval_goes_to_approved(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(
            make_entry_spec(cash_sale_spec.lines, approval_required=False), test_actor_id
        )
        entry = journal_engine.submit(entry.entry_number, test_actor_id)

        assert entry.status == JournalEntryStatus.APPROVED
        assert entry.approved_by_id == test_actor_id

    def test_reject_returns_to_draft(self, journal_engine, auditor_service, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        journal_engine.submit(entry.entry_number, test_actor_id)

        entry = journal_engine.reject(entry.entry_number, test_actor_id, "wrong store")

        assert entry.status == JournalEntryStatus.DRAFT
        trace = auditor_service.get_trace("JournalEntry", entry.entry_number)
        assert trace.last_action == AuditAction.JOURNAL_REJECTED
        assert trace.entries[-1].payload["reason"] == "wrong store"

    def test_approve_draft_rejected(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        with pytest.raises(InvalidTransitionError):
            journal_engine.approve(entry.entry_number, test_actor_id)

    def test_submit_twice_rejected(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        journal_engine.submit(entry.entry_number, test_actor_id)
        with pytest.raises(InvalidTransitionError):
            journal_engine.submit(entry.entry_number, test_actor_id)

    @pytest.mark.parametrize("steps", [0, 1])
    def test_post_before_approval_rejected(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id, steps):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        if steps:
            journal_engine.submit(entry.entry_number, test_actor_id)

        with pytest.raises(NotApprovedError):
            journal_engine.post(entry.entry_number, test_actor_id)

    def test_post_twice_rejected(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_and_post(cash_sale_spec, test_actor_id)
        with pytest.raises(NotApprovedError):
            journal_engine.post(entry.entry_number, test_actor_id)


# =============================================================================
# Balance validation
# =============================================================================


class TestBalanceValidation:

    def test_unbalanced_submit_rejected(self, journal_engine, ledger_selector, standard_accounts, test_actor_id, captured_logs):
        entry = journal_engine.create_draft(_unbalanced_spec(), test_actor_id)

        with pytest.raises(UnbalancedEntryError) as exc_info:
            journal_engine.submit(entry.entry_number, test_actor_id)

        assert exc_info.value.debits == "1000.00"
        assert exc_info.value.credits == "900.00"
        assert journal_engine.get_entry(entry.entry_number).status == JournalEntryStatus.DRAFT
        assert ledger_selector.query() == []
        assert any(r["message"] == "balance_validation_failed" for r in captured_logs())

    def test_unbalanced_fast_path_writes_nothing(self, journal_engine, journal_selector, ledger_selector, standard_accounts, test_actor_id):
        with pytest.raises(UnbalancedEntryError):
            journal_engine.create_and_post(_unbalanced_spec(), test_actor_id)

        assert journal_selector.count_entries() == 0
        assert ledger_selector.query() == []

    def test_difference_at_tolerance_accepted(self, journal_engine, standard_accounts, test_actor_id, captured_logs):
        entry = journal_engine.create_and_post(
            make_entry_spec([
                JournalLineSpec.debit("CASH", "100.01"),
                JournalLineSpec.credit("SALES", "100.00"),
            ]),
            test_actor_id,
        )

        assert entry.status == JournalEntryStatus.POSTED
        warnings = [r for r in captured_logs() if r["message"] == "balance_difference_within_tolerance"]
        assert warnings and warnings[0]["difference"] == "0.01"

    def test_difference_above_tolerance_rejected(self, journal_engine, standard_accounts, test_actor_id):
        with pytest.raises(UnbalancedEntryError):
            journal_engine.create_and_post(
                make_entry_spec([
                    JournalLineSpec.debit("CASH", "100.02"),
                    JournalLineSpec.credit("SALES", "100.00"),
                ]),
                test_actor_id,
            )

    def test_sub_cent_amounts_rounded_before_check(self, journal_engine, standard_accounts, test_actor_id):
        entry = journal_engine.create_and_post(
            make_entry_spec([
                JournalLineSpec.debit("CASH", "33.333"),
                JournalLineSpec.debit("BANK", "33.333"),
                JournalLineSpec.credit("SALES", "66.67"),
            ]),
            test_actor_id,
        )
        assert entry.total_debit == Decimal("66.66")
        assert entry.total_credit == Decimal("66.67")


# =============================================================================
# Posting
# =============================================================================


class TestPosting:

    def test_ledger_lines_materialized(self, journal_engine, ledger_selector, standard_accounts, test_actor_id):
        entry = journal_engine.create_and_post(
            make_entry_spec(
                [
                    JournalLineSpec.debit("CASH", "1000", cost_center="CC1"),
                    JournalLineSpec.credit("SALES", "1000", description="Counter sale"),
                ],
                description="Cash sale",
                entry_type=JournalEntryType.SALES,
                transaction_type=TransactionType.SALE,
                store_id="S1",
                customer_id="C1",
                customer_name="Walk-in",
                payment_method=PaymentMethod.CASH,
            ),
            test_actor_id,
        )

        lines = ledger_selector.lines_for_reference(entry.entry_number)
        assert [line.transaction_id for line in lines] == [
            "JE20240110-0001-001-D",
            "JE20240110-0001-002-C",
        ]
        cash, sales = lines
        assert cash.debit_amount == Decimal("1000.00")
        assert cash.cost_center == "CC1"
        assert cash.description == "Cash sale"
        assert sales.credit_amount == Decimal("1000.00")
        assert sales.description == "Counter sale"
        for line in lines:
            assert line.status == LedgerLineStatus.CONFIRMED
            assert line.reference_type == "sales"
            assert line.transaction_type == TransactionType.SALE
            assert line.store_id == "S1"
            assert line.customer_name == "Walk-in"
            assert line.payment_method == PaymentMethod.CASH
            assert line.journal_entry_id == entry.id

    def test_nothing_posted_before_post(self, journal_engine, ledger_selector, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        journal_engine.submit(entry.entry_number, test_actor_id)
        journal_engine.approve(entry.entry_number, test_actor_id)

        assert ledger_selector.lines_for_reference(entry.entry_number) == []

    def test_failed_materialization_rolls_back(
        self, journal_engine, account_registry, ledger_selector, standard_accounts, cash_sale_spec, test_actor_id
    ):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        journal_engine.submit(entry.entry_number, test_actor_id)
        journal_engine.approve(entry.entry_number, test_actor_id)
        account_registry.deactivate("SALES", test_actor_id)

        with pytest.raises(AccountInactiveError):
            journal_engine.post(entry.entry_number, test_actor_id)

        assert ledger_selector.lines_for_reference(entry.entry_number) == []
        assert journal_engine.get_entry(entry.entry_number).status == JournalEntryStatus.APPROVED

    def test_try_post_success(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(
            make_entry_spec(cash_sale_spec.lines, approval_required=False), test_actor_id
        )
        journal_engine.submit(entry.entry_number, test_actor_id)

        result = journal_engine.try_post(entry.entry_number, test_actor_id)

        assert result.is_success
        assert result.entry_number == entry.entry_number
        assert result.status == JournalEntryStatus.POSTED

    def test_try_post_failure_is_typed(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id, captured_logs):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)

        result = journal_engine.try_post(entry.entry_number, test_actor_id)

        assert not result.success
        assert result.error_code == "NOT_APPROVED"
        assert result.status == JournalEntryStatus.DRAFT
        assert any(r["message"] == "journal_entry_post_rejected" for r in captured_logs())

    def test_try_post_unknown_entry(self, journal_engine, test_actor_id):
        result = journal_engine.try_post("JE-MISSING", test_actor_id)
        assert result.error_code == "JOURNAL_ENTRY_NOT_FOUND"
        assert result.status is None


# =============================================================================
# Versions
# =============================================================================


class TestVersionCheck:

    def test_version_increments_on_each_transition(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        v1 = entry.version
        entry = journal_engine.submit(entry.entry_number, test_actor_id, expected_version=v1)
        assert entry.version == v1 + 1

    def test_stale_version_rejected(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id, captured_logs):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        stale = entry.version
        journal_engine.submit(entry.entry_number, test_actor_id)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            journal_engine.approve(entry.entry_number, test_actor_id, expected_version=stale)

        assert exc_info.value.expected_version == stale
        assert exc_info.value.actual_version == stale + 1
        assert any(r["message"] == "journal_entry_version_conflict" for r in captured_logs())


# =============================================================================
# Audit and logs
# =============================================================================


class TestAuditTrail:

    def test_lifecycle_audited_in_order(self, journal_engine, auditor_service, standard_accounts, cash_sale_spec, test_actor_id):
        entry = journal_engine.create_draft(cash_sale_spec, test_actor_id)
        journal_engine.submit(entry.entry_number, test_actor_id)
        journal_engine.approve(entry.entry_number, test_actor_id)
        journal_engine.post(entry.entry_number, test_actor_id)

        trace = auditor_service.get_trace("JournalEntry", entry.entry_number)
        assert trace.actions == (
            AuditAction.JOURNAL_DRAFT_CREATED,
            AuditAction.JOURNAL_SUBMITTED,
            AuditAction.JOURNAL_APPROVED,
            AuditAction.JOURNAL_POSTED,
        )
        assert [(e.from_state, e.to_state) for e in trace.entries] == [
            (None, "draft"),
            ("draft", "pending_approval"),
            ("pending_approval", "approved"),
            ("approved", "posted"),
        ]
        assert trace.entries[-1].payload["ledger_line_count"] == 2
        assert auditor_service.validate_chain()

    def test_posted_log_carries_context(self, journal_engine, standard_accounts, cash_sale_spec, test_actor_id, captured_logs):
        entry = journal_engine.create_draft(
            make_entry_spec(cash_sale_spec.lines, approval_required=False), test_actor_id
        )
        journal_engine.submit(entry.entry_number, test_actor_id)
        journal_engine.post(entry.entry_number, test_actor_id)

        posted = [r for r in captured_logs() if r["message"] == "journal_entry_posted"]
        assert len(posted) == 1
        assert posted[0]["entry_number"] == entry.entry_number
        assert posted[0]["actor_id"] == str(test_actor_id)
        assert posted[0]["ledger_line_count"] == 2
