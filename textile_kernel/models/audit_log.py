"""
Module: textile_kernel.models.audit_log
Responsibility: Append-only record of sensitive business actions (stock
    adjustments, cancellations, vendor return processing).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import Base, UTCDateTime, UUIDString


class AuditAction(str, Enum):
    """Audited actions."""

    STOCK_ADJUSTMENT = "stock_adjustment"
    PO_EDITED_AFTER_SUBMIT = "po_edited_after_submit"
    PO_CANCELLED = "po_cancelled"
    WORK_ORDER_CANCELLED = "work_order_cancelled"
    VENDOR_RETURN_PROCESSED = "vendor_return_processed"
    VENDOR_RETURN_COMPLETED = "vendor_return_completed"
    DOC_NUMBER_CONFIG_CHANGED = "doc_number_config_changed"


class AuditLog(Base):
    """Who did what to which record, with before/after values."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_log_entity", "entity_type", "entity_id"),
        Index("idx_audit_log_action", "action"),
        Index("idx_audit_log_occurred", "occurred_at"),
    )

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.entity_type}:{self.entity_id}>"
