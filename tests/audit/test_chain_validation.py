"""
Audit chain validation tests.

Verifies:
- Every kernel transition appends one hash-linked AuditEvent
- validate_chain() walks the chain from genesis
- Tampering with a stored payload, hash or link is detected
- Transition sinks receive one record per transition
"""

from contextlib import contextmanager

import pytest
from sqlalchemy import select, text

from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.dtos import AccountSpec, TransitionRecord
from ledger_kernel.exceptions import AuditChainBrokenError
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.auditor_service import AuditorService


@contextmanager
def disabled_immutability():
    """Disable the ORM immutability listeners to simulate tampering."""
    unregister_immutability_listeners()
    try:
        yield
    finally:
        register_immutability_listeners()


@pytest.fixture
def audited_history(journal_engine, post_entry, cash_sale_spec, standard_accounts, test_actor_id):
    """Accounts plus one posted and one reversed entry."""
    entry = post_entry(cash_sale_spec.lines)
    journal_engine.reverse(entry.entry_number, "test", test_actor_id)
    return entry


def _events(session) -> list[AuditEvent]:
    return list(session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().all())


class TestChainStructure:

    def test_genesis_has_no_prev_hash(self, session, audited_history):
        events = _events(session)
        assert events[0].prev_hash is None
        assert events[0].action == AuditAction.ACCOUNT_CREATED

    def test_each_event_links_to_previous(self, session, audited_history):
        events = _events(session)
        for previous, current in zip(events, events[1:]):
            assert current.prev_hash == previous.hash
            assert current.seq > previous.seq

    def test_valid_chain(self, auditor_service, audited_history):
        assert auditor_service.validate_chain() is True

    def test_empty_chain_is_valid(self, auditor_service):
        assert auditor_service.validate_chain() is True

    def test_recent_events_newest_first(self, auditor_service, audited_history):
        recent = auditor_service.get_recent_events(limit=2)
        assert len(recent) == 2
        assert recent[0].seq > recent[1].seq
        assert recent[0].action == AuditAction.JOURNAL_REVERSED


class TestTamperDetection:

    def test_payload_tamper_detected(self, session, auditor_service, audited_history):
        events = _events(session)
        target = events[len(events) // 2]
        with disabled_immutability():
            target.payload = {**target.payload, "total_debit": "1.00"}
            session.flush()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor_service.validate_chain()
        assert exc_info.value.seq == target.seq

    def test_hash_tamper_detected(self, session, auditor_service, audited_history):
        session.execute(text("UPDATE audit_events SET hash = :h WHERE seq = 2"), {"h": "0" * 64})
        session.expire_all()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor_service.validate_chain()
        assert exc_info.value.seq == 2

    def test_broken_link_detected(self, session, auditor_service, audited_history):
        session.execute(text("UPDATE audit_events SET prev_hash = NULL WHERE seq = 3"))
        session.expire_all()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor_service.validate_chain()
        assert exc_info.value.seq == 3

    def test_tamper_logged_as_critical(self, session, auditor_service, audited_history, captured_logs):
        session.execute(text("UPDATE audit_events SET hash = :h WHERE seq = 1"), {"h": "f" * 64})
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            auditor_service.validate_chain()
        broken = [r for r in captured_logs() if r["message"] == "audit_chain_broken"]
        assert broken and broken[0]["level"] == "CRITICAL"


class TestTransitionSinks:

    def test_sink_receives_records(self, session, deterministic_clock, test_actor_id):
        received: list[TransitionRecord] = []
        auditor = AuditorService(session, deterministic_clock, sinks=[received.append])
        registry = AccountRegistry(session, deterministic_clock, auditor)

        registry.create_account(AccountSpec("CASH", "Cash", AccountType.ASSET), test_actor_id)
        registry.deactivate("CASH", test_actor_id)

        assert [r.action for r in received] == ["account_created", "account_deactivated"]
        assert received[1].from_state == "active"
        assert received[1].to_state == "inactive"
        assert received[0].entity_key == "CASH"
        assert received[0].actor_id == test_actor_id
        assert received[0].occurred_at == deterministic_clock.now()

    def test_failing_sink_propagates(self, session, deterministic_clock, test_actor_id):
        def _broken_sink(record):
            raise RuntimeError("audit log unavailable")

        auditor = AuditorService(session, deterministic_clock)
        auditor.add_sink(_broken_sink)
        registry = AccountRegistry(session, deterministic_clock, auditor)

        with pytest.raises(RuntimeError, match="audit log unavailable"):
            registry.create_account(AccountSpec("CASH", "Cash", AccountType.ASSET), test_actor_id)
