"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every state transition
    in the kernel (account changes, journal lifecycle, withholding status),
    hands a ``TransitionRecord`` to any registered external sinks, and
    validates the chain on demand.

Architecture position:
    Kernel > Services.  Called by AccountRegistry, JournalEngine and
    WithholdingPoster.

Invariants enforced:
    - seq comes from SequenceService (locked counter row).
    - hash = H(entity_type | entity_key | action | payload_hash | prev_hash);
      from_state and to_state are part of the payload, so they are covered
      by the hash.
    - Append-only: AuditEvent rows are protected by the ORM listeners.

Failure modes:
    - AuditChainBrokenError from validate_chain() when a stored hash or link
      does not match.
    - Exceptions raised by a sink propagate; the caller's transaction then
      rolls back together with the audited change.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import TransitionRecord
from ledger_kernel.exceptions import AuditChainBrokenError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.models.withholding import WithholdingRecord
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")

TransitionSink = Callable[[TransitionRecord], None]


def _state(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", str(value))


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    from_state: str | None
    to_state: str | None
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, in sequence order."""

    entity_type: str
    entity_key: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Contract:
        One AuditEvent per successful transition, flushed in the caller's
        transaction, then one TransitionRecord per sink.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT deliver records anywhere itself; external audit logs
          register a sink.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sinks: Iterable[TransitionSink] = (),
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)
        self._sinks: list[TransitionSink] = list(sinks)

    def add_sink(self, sink: TransitionSink) -> None:
        self._sinks.append(sink)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_key: str,
        action: AuditAction,
        actor_id: UUID,
        from_state: str | None = None,
        to_state: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        Postconditions:
            - A new AuditEvent row is flushed with a strictly increasing seq
              and ``prev_hash`` equal to the previous event's hash.
            - Every registered sink has received the TransitionRecord.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()
        occurred_at = self._clock.now()

        payload = to_json_safe({
            "from_state": from_state,
            "to_state": to_state,
            "actor_id": actor_id,
            "occurred_at": occurred_at,
            **(details or {}),
        })
        payload_hash = hash_payload(payload)
        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_key=entity_key,
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_key=entity_key,
            action=action,
            actor_id=actor_id,
            from_state=from_state,
            to_state=to_state,
            occurred_at=occurred_at,
            payload=payload,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_key": entity_key,
                "action": action.value,
                "from_state": from_state,
                "to_state": to_state,
                "seq": seq,
            },
        )

        if self._sinks:
            record = TransitionRecord(
                entity_type=entity_type,
                entity_key=entity_key,
                action=action.value,
                actor_id=actor_id,
                from_state=from_state,
                to_state=to_state,
                occurred_at=occurred_at,
                details=dict(details or {}),
            )
            for sink in self._sinks:
                sink(record)

        return audit_event

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def record_account_created(self, account: Account, actor_id: UUID) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Account",
            entity_key=account.code,
            action=AuditAction.ACCOUNT_CREATED,
            actor_id=actor_id,
            to_state="active",
            details={
                "name": account.name,
                "account_type": account.account_type,
                "parent_id": account.parent_id,
                "level": account.level,
            },
        )

    def record_account_deactivated(
        self,
        account: Account,
        actor_id: UUID,
        balance: Decimal,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Account",
            entity_key=account.code,
            action=AuditAction.ACCOUNT_DEACTIVATED,
            actor_id=actor_id,
            from_state="active",
            to_state="inactive",
            details={"balance_at_deactivation": balance},
        )

    def record_account_type_changed(
        self,
        account: Account,
        old_type: AccountType,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Account",
            entity_key=account.code,
            action=AuditAction.ACCOUNT_TYPE_CHANGED,
            actor_id=actor_id,
            from_state=_state(old_type),
            to_state=_state(account.account_type),
        )

    # ------------------------------------------------------------------
    # Journal entries
    # ------------------------------------------------------------------

    def record_journal_transition(
        self,
        entry: JournalEntry,
        action: AuditAction,
        actor_id: UUID,
        from_state: Any,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record one journal lifecycle step; to_state is the entry's status now."""
        return self._create_audit_event(
            entity_type="JournalEntry",
            entity_key=entry.entry_number,
            action=action,
            actor_id=actor_id,
            from_state=_state(from_state),
            to_state=_state(entry.status),
            details={
                "total_debit": entry.total_debit,
                "total_credit": entry.total_credit,
                **(details or {}),
            },
        )

    # ------------------------------------------------------------------
    # Withholding
    # ------------------------------------------------------------------

    def record_withholding_recorded(
        self,
        record: WithholdingRecord,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="WithholdingRecord",
            entity_key=record.tds_number,
            action=AuditAction.WITHHOLDING_RECORDED,
            actor_id=actor_id,
            to_state=_state(record.status),
            details={
                "vendor_id": record.vendor_id,
                "tds_section": record.tds_section,
                "gross_amount": record.gross_amount,
                "tds_amount": record.tds_amount,
            },
        )

    def record_withholding_status_changed(
        self,
        record: WithholdingRecord,
        from_state: Any,
        actor_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="WithholdingRecord",
            entity_key=record.tds_number,
            action=AuditAction.WITHHOLDING_STATUS_CHANGED,
            actor_id=actor_id,
            from_state=_state(from_state),
            to_state=_state(record.status),
            details=details,
        )

    # ------------------------------------------------------------------
    # Validation and queries
    # ------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Postconditions:
            - Returns True only if every payload hash, every event hash and
              every prev_hash link matches.

        Raises:
            AuditChainBrokenError: At the first event that fails.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for event in events:
            if event.prev_hash != prev_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(event.seq, prev_hash or "None", event.prev_hash or "None")

            payload_hash = hash_payload(event.payload or {})
            if payload_hash != event.payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(event.seq, payload_hash, event.payload_hash)

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_key=event.entity_key,
                action=AuditAction(event.action).value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(event.seq, expected_hash, event.hash)

            prev_hash = event.hash

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_key: str) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type)
            .where(AuditEvent.entity_key == entity_key)
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_key=entity_key,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=AuditAction(e.action),
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    from_state=e.from_state,
                    to_state=e.to_state,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(
            self._session.execute(
                select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(limit)
            ).scalars().all()
        )
