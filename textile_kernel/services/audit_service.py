"""
AuditService -- append-only audit trail for sensitive actions.

Kernel > Services.  Writes AuditLog rows inside the caller's transaction so
an audit entry exists if and only if the audited change commits.  Does not
commit.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.logging_config import get_logger
from textile_kernel.models.audit_log import AuditAction, AuditLog

logger = get_logger("services.audit_service")


def _jsonable(value: Any) -> Any:
    """Make a payload JSON-safe; decimals stay exact as strings."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


class AuditService:
    """Records AuditLog entries."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        *,
        actor_id: UUID,
        action: AuditAction | str,
        entity_type: str,
        entity_id: UUID,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        reason: str | None = None,
        context: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            actor_id=actor_id,
            action=AuditAction(action).value,
            entity_type=entity_type,
            entity_id=entity_id,
            before=_jsonable(before) if before is not None else None,
            after=_jsonable(after) if after is not None else None,
            reason=reason,
            context=_jsonable(context) if context is not None else None,
            ip_address=ip_address,
            occurred_at=self._clock.now(),
        )
        self._session.add(entry)
        self._session.flush()
        logger.info(
            "audit_recorded",
            extra={
                "action": entry.action,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "actor_id": str(actor_id),
            },
        )
        return entry
