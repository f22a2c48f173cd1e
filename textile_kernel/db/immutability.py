"""
ORM-level immutability for the stock ledger and the audit log.

Layer 1 of append-only enforcement: SQLAlchemy ``before_update`` /
``before_delete`` mapper events on StockMovement and AuditLog raise
ImmutabilityViolationError before any SQL is emitted.

Why ledger rows must never change:
    The stock card and the replay check read StockMovement rows in seq order
    and fold them into a costing state.  Editing or removing a single row
    silently desynchronizes every later balance snapshot from the
    InventoryValue row.  Corrections are posted as new movements
    (adjustments, returns), never as edits.

``init_engine_from_url`` registers the listeners whenever an engine is
created.  ``unregister_immutability_listeners`` exists for data migrations.
"""

from sqlalchemy import event

from textile_kernel.exceptions import ImmutabilityViolationError
from textile_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_stock_movement_update(mapper, connection, target):
    """Stock movements are append-only."""
    _block(
        "StockMovement", target, "UPDATE",
        "Stock movements are append-only; post a correcting movement instead",
    )


def _check_stock_movement_delete(mapper, connection, target):
    """Stock movements cannot be deleted."""
    _block("StockMovement", target, "DELETE", "Stock movements cannot be deleted")


def _check_audit_log_update(mapper, connection, target):
    """Audit log entries are append-only."""
    _block("AuditLog", target, "UPDATE", "Audit log entries cannot be modified")


def _check_audit_log_delete(mapper, connection, target):
    """Audit log entries cannot be deleted."""
    _block("AuditLog", target, "DELETE", "Audit log entries cannot be deleted")


_LISTENERS = (
    ("StockMovement", "before_update", _check_stock_movement_update),
    ("StockMovement", "before_delete", _check_stock_movement_delete),
    ("AuditLog", "before_update", _check_audit_log_update),
    ("AuditLog", "before_delete", _check_audit_log_delete),
)


def _targets() -> dict:
    from textile_kernel.models.audit_log import AuditLog
    from textile_kernel.models.inventory import StockMovement

    return {"StockMovement": StockMovement, "AuditLog": AuditLog}


def register_immutability_listeners() -> None:
    """Register append-only listeners (idempotent)."""
    targets = _targets()
    for model_name, event_name, fn in _LISTENERS:
        model = targets[model_name]
        if not event.contains(model, event_name, fn):
            event.listen(model, event_name, fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove append-only listeners.

    WARNING: Only for tests and data migrations.
    """
    targets = _targets()
    for model_name, event_name, fn in _LISTENERS:
        _safe_remove_listener(targets[model_name], event_name, fn)
