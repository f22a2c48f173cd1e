"""
Shared helpers for module document workflows.

Used by textile_modules/*/service.py to reduce duplication around the
transaction boundary, parent-document locking and boundary input checks.

Architecture: Modules layer.  Imports only from textile_kernel.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from textile_kernel.config import KernelSettings
from textile_kernel.db.base import Base
from textile_kernel.db.unit_of_work import unit_of_work
from textile_kernel.domain.values import ZERO, exact_context, quantize_value
from textile_kernel.exceptions import DocumentNotFoundError, ValidationError
from textile_kernel.logging_config import LogContext

ModelT = TypeVar("ModelT", bound=Base)


@contextmanager
def workflow_scope(
    session: Session,
    settings: KernelSettings,
    workflow: str,
    actor_id: UUID,
    doc_type: str | None = None,
) -> Iterator[Session]:
    """Bind log context, then run the block as one unit of work.

    ``doc_number`` is bound empty so the workflow can ``LogContext.set`` it
    once the sequencer has issued one.
    """
    with LogContext.bind(
        workflow=workflow,
        actor_id=actor_id,
        doc_type=doc_type,
        doc_number=None,
    ):
        with unit_of_work(
            session, workflow, lock_timeout_ms=settings.lock_timeout_ms
        ) as uow:
            yield uow


def lock_document(
    session: Session,
    model: type[ModelT],
    document_id: UUID,
    document_type: str,
) -> ModelT:
    """SELECT ... FOR UPDATE a parent document, or raise DocumentNotFoundError."""
    row = session.execute(
        select(model)
        .where(model.id == document_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if row is None:
        raise DocumentNotFoundError(document_type, document_id)
    return row


def get_document(
    session: Session,
    model: type[ModelT],
    document_id: UUID,
    document_type: str,
) -> ModelT:
    row = session.get(model, document_id)
    if row is None:
        raise DocumentNotFoundError(document_type, document_id)
    return row


def require_text(value: str | None, field: str, min_length: int = 1) -> str:
    """Stripped ``value``; ValidationError when shorter than ``min_length``."""
    text = (value or "").strip()
    if len(text) < min_length:
        raise ValidationError(
            f"{field} must be at least {min_length} characters", field
        )
    return text


def require_lines(lines: Any, field: str = "lines") -> list[Any]:
    lines = list(lines or [])
    if not lines:
        raise ValidationError(f"At least one line is required in {field}", field)
    return lines


def line_total(qty: Decimal, unit_cost: Decimal) -> Decimal:
    with exact_context():
        return quantize_value(qty * unit_cost)


def sum_decimals(values: Any) -> Decimal:
    with exact_context():
        return sum(values, ZERO)

