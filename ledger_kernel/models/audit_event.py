"""
Module: ledger_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (db/immutability.py).
    - hash = H(entity_type | entity_key | action | payload_hash | prev_hash),
      validated by AuditorService.validate_chain().
    - seq is strictly increasing, allocated by SequenceService.

Audit relevance:
    Every journal entry state transition, account change and withholding
    status change produces one AuditEvent carrying from_state and to_state.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString
from ledger_kernel.db.types import EnumString


class AuditAction(str, Enum):
    """Auditable actions.  Each member has a recording method on AuditorService."""

    # Account lifecycle
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    ACCOUNT_TYPE_CHANGED = "account_type_changed"

    # Journal lifecycle
    JOURNAL_DRAFT_CREATED = "journal_draft_created"
    JOURNAL_LINES_REPLACED = "journal_lines_replaced"
    JOURNAL_SUBMITTED = "journal_submitted"
    JOURNAL_APPROVED = "journal_approved"
    JOURNAL_REJECTED = "journal_rejected"
    JOURNAL_POSTED = "journal_posted"
    JOURNAL_REVERSED = "journal_reversed"

    # Withholding lifecycle
    WITHHOLDING_RECORDED = "withholding_recorded"
    WITHHOLDING_STATUS_CHANGED = "withholding_status_changed"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - prev_hash is None only for the genesis event.
        - entity_key is the business key (entry number, account code,
          TDS number), not the surrogate id.

    Non-goals:
        - Hash correctness is not checked at INSERT time; AuditorService
          computes it and validate_chain() verifies it.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_key"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # e.g. "JournalEntry", "Account", "WithholdingRecord"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_key: Mapped[str] = mapped_column(String(100), nullable=False)

    action: Mapped[AuditAction] = mapped_column(
        EnumString(AuditAction, length=50),
        nullable=False,
    )

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    from_state: Mapped[str | None] = mapped_column(String(30), nullable=True)

    to_state: Mapped[str | None] = mapped_column(String(30), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.seq} {self.action} on {self.entity_type}:{self.entity_key}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
