"""
Module: ledger_kernel.models.sequence
Responsibility: Named monotonic counters used for entry numbers,
    transaction ids, TDS numbers and the audit chain.
Architecture position: Kernel > Models.  Written only by SequenceService.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """
    One row per named sequence.

    Row-level locking on this table serializes allocations for the same
    name; different names never contend.
    """

    __tablename__ = "sequence_counters"

    # e.g. "audit_event", "journal_entry:JE20240110"
    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
