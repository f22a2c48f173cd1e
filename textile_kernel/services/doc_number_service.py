"""
DocNumberService -- gapless per-period document numbering.

Responsibility:
    Issues human-readable document numbers (``PO/2025/0001``,
    ``GRN/2025/03/0007`` ...) from a locked counter row per document type,
    resetting the counter when the year or month rolls over.

Architecture position:
    Kernel > Services -- imperative shell.  Called by every module workflow
    right after its unit of work begins.

Invariants enforced:
    - Uniqueness per (doc_type, period): the counter row is read with
      SELECT ... FOR UPDATE and incremented in the caller's transaction, so
      two concurrent callers serialize on the row and never see the same
      value.  If the caller's transaction rolls back, the number is not
      consumed (no gaps).
    - Period rollover is driven by the injected Clock only, and compares
      only the fields the reset policy numbers by.

Failure modes:
    - ValidationError on an unknown doc_type or invalid config update.
    - Lock wait beyond the transaction's lock_timeout surfaces from the
      unit of work as LockTimeoutError.

Legacy fallback:
    ``ScanningDocNumberStrategy`` derives the next number from the highest
    existing number for the period.  It is only safe under low concurrency
    (two writers can compute the same max) and relies on the document
    table's unique constraint to reject the loser.  Workflows do not use it.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.doc_numbers import (
    DEFAULT_DOC_NUMBER_CONFIGS,
    DocNumberDefaults,
    DocType,
    PeriodKey,
    ResetPeriod,
    format_doc_number,
    normalize_prefix,
    parse_counter,
    period_prefix,
    starts_new_period,
)
from textile_kernel.exceptions import ValidationError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.audit_log import AuditAction
from textile_kernel.models.doc_number import DocNumberConfig
from textile_kernel.services.audit_service import AuditService

logger = get_logger("services.doc_number_service")

# Creator id for config rows seeded on first use
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


def _coerce_doc_type(doc_type: DocType | str) -> DocType:
    try:
        return DocType(doc_type)
    except ValueError:
        raise ValidationError(f"Unknown document type: {doc_type}", "doc_type") from None


class DocNumberService:
    """
    Allocates document numbers from DocNumberConfig rows.

    Contract:
        ``next_doc_number`` must be called inside the transaction that
        persists the numbered document.

    Non-goals:
        - Does NOT call ``session.commit()`` -- the workflow's unit of work
          owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        defaults: dict[DocType, DocNumberDefaults] | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._defaults = defaults or DEFAULT_DOC_NUMBER_CONFIGS

    def _select_config(self, doc_type: DocType, lock: bool):
        stmt = select(DocNumberConfig).where(DocNumberConfig.doc_type == doc_type.value)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _new_config(self, doc_type: DocType) -> DocNumberConfig:
        defaults = self._defaults[doc_type]
        return DocNumberConfig(
            doc_type=doc_type.value,
            prefix=normalize_prefix(defaults.prefix),
            reset_period=defaults.reset_period.value,
            padding=defaults.padding,
            last_number=0,
            created_by_id=SYSTEM_ACTOR_ID,
        )

    def _lock_config(self, doc_type: DocType) -> DocNumberConfig:
        """Lock the config row, creating it from defaults on first use."""
        config = self._select_config(doc_type, lock=True)
        if config is not None:
            return config

        # Another transaction may seed the same row concurrently; the
        # savepoint keeps the caller's earlier work if our insert loses.
        savepoint = self._session.begin_nested()
        try:
            config = self._new_config(doc_type)
            self._session.add(config)
            self._session.flush()
            savepoint.commit()
            logger.info("doc_number_config_seeded", extra={"doc_type": doc_type.value})
            return config
        except IntegrityError:
            logger.debug("doc_number_config_race_retry", extra={"doc_type": doc_type.value})
            savepoint.rollback()
            return self._select_config(doc_type, lock=True)

    def next_doc_number(self, doc_type: DocType | str) -> str:
        """
        Reserve and return the next number for ``doc_type``.

        Preconditions:
            The caller is inside an active transaction.
        Postconditions:
            The config row is locked until the transaction ends, and its
            (last_number, last_year, last_month) reflect the returned number.
        """
        doc_type = _coerce_doc_type(doc_type)
        config = self._lock_config(doc_type)

        reset_period = ResetPeriod(config.reset_period)
        now = self._clock.now()
        period = PeriodKey.for_moment(reset_period, now)
        if starts_new_period(reset_period, config.last_year, config.last_month, now):
            if config.last_number:
                logger.info(
                    "doc_number_period_reset",
                    extra={
                        "doc_type": doc_type.value,
                        "previous_year": config.last_year,
                        "previous_month": config.last_month,
                        "previous_number": config.last_number,
                    },
                )
            config.last_number = 0

        config.last_number += 1
        config.last_year = now.year
        config.last_month = now.month
        self._session.flush()

        number = format_doc_number(config.prefix, period, config.last_number, config.padding)
        logger.info(
            "doc_number_issued",
            extra={"doc_type": doc_type.value, "doc_number": number},
        )
        return number

    def preview_next(self, doc_type: DocType | str) -> str:
        """The number ``next_doc_number`` would return now, without reserving it."""
        doc_type = _coerce_doc_type(doc_type)
        config = self._select_config(doc_type, lock=False) or self._new_config(doc_type)
        reset_period = ResetPeriod(config.reset_period)
        now = self._clock.now()
        period = PeriodKey.for_moment(reset_period, now)
        fresh = starts_new_period(reset_period, config.last_year, config.last_month, now)
        next_number = (0 if fresh else config.last_number) + 1
        return format_doc_number(config.prefix, period, next_number, config.padding)

    def seed_defaults(self) -> list[DocNumberConfig]:
        """Create any missing config rows from the defaults."""
        created = []
        for doc_type in self._defaults:
            if self._select_config(doc_type, lock=False) is None:
                config = self._new_config(doc_type)
                self._session.add(config)
                created.append(config)
        self._session.flush()
        return created

    def list_configs(self) -> list[DocNumberConfig]:
        return list(
            self._session.execute(
                select(DocNumberConfig).order_by(DocNumberConfig.doc_type)
            ).scalars()
        )

    def update_config(
        self,
        doc_type: DocType | str,
        actor_id: UUID,
        *,
        prefix: str | None = None,
        reset_period: ResetPeriod | str | None = None,
        padding: int | None = None,
    ) -> DocNumberConfig:
        """
        Change the numbering policy of one document type.

        The counter itself is never edited here; a changed reset period
        takes effect from the next number (which starts a new period).
        """
        doc_type = _coerce_doc_type(doc_type)
        if prefix is not None and not 1 <= len(prefix.strip()) <= 10:
            raise ValidationError("Prefix must be 1 to 10 characters", "prefix")
        if padding is not None and not 1 <= padding <= 10:
            raise ValidationError("Padding must be between 1 and 10", "padding")
        if reset_period is not None:
            try:
                reset_period = ResetPeriod(reset_period)
            except ValueError:
                raise ValidationError(
                    f"Unknown reset period: {reset_period}", "reset_period"
                ) from None

        config = self._lock_config(doc_type)
        before: dict[str, Any] = {
            "prefix": config.prefix,
            "reset_period": config.reset_period,
            "padding": config.padding,
        }
        if prefix is not None:
            config.prefix = normalize_prefix(prefix)
        if reset_period is not None:
            config.reset_period = reset_period.value
        if padding is not None:
            config.padding = padding
        config.updated_by_id = actor_id
        self._session.flush()

        AuditService(self._session, self._clock).record(
            actor_id=actor_id,
            action=AuditAction.DOC_NUMBER_CONFIG_CHANGED,
            entity_type="DocNumberConfig",
            entity_id=config.id,
            before=before,
            after={
                "prefix": config.prefix,
                "reset_period": config.reset_period,
                "padding": config.padding,
            },
        )
        logger.info(
            "doc_number_config_updated",
            extra={"doc_type": doc_type.value, "actor_id": str(actor_id)},
        )
        return config


class ScanningDocNumberStrategy:
    """
    Legacy numbering: highest existing number for the period, plus one.

    Contract:
        ``number_column`` is the unique doc-number column of the document
        table being numbered.  Uniqueness under concurrency comes only from
        that constraint; the loser of a race gets an IntegrityError and must
        retry its whole transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        defaults: dict[DocType, DocNumberDefaults] | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._defaults = defaults or DEFAULT_DOC_NUMBER_CONFIGS

    def next_doc_number(self, doc_type: DocType | str, number_column: Any) -> str:
        doc_type = _coerce_doc_type(doc_type)
        config = self._session.execute(
            select(DocNumberConfig).where(DocNumberConfig.doc_type == doc_type.value)
        ).scalar_one_or_none()
        if config is not None:
            prefix, reset, padding = config.prefix, ResetPeriod(config.reset_period), config.padding
        else:
            defaults = self._defaults[doc_type]
            prefix, reset, padding = defaults.prefix, defaults.reset_period, defaults.padding

        period = PeriodKey.for_moment(reset, self._clock.now())
        head = period_prefix(prefix, period)
        existing = self._session.execute(
            select(number_column).where(number_column.like(f"{head}%"))
        ).scalars()
        highest = max(
            (n for n in (parse_counter(value, prefix, period) for value in existing) if n is not None),
            default=0,
        )
        number = format_doc_number(prefix, period, highest + 1, padding)
        logger.debug(
            "doc_number_scanned",
            extra={"doc_type": doc_type.value, "doc_number": number},
        )
        return number
