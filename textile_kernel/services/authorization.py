"""
Step-up authorization gate for sensitive actions.

The core does not authenticate anyone.  Sensitive workflows (stock
adjustment, editing a submitted PO, voiding a document ...) call an external
verifier -- in production a PIN check with attempt rate limiting -- through
the ``StepUpVerifier`` protocol, and treat any non-success as a hard abort
before the first write.

Fails closed: with enforcement on and no verifier configured, every
sensitive action is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID

from textile_kernel.exceptions import StepUpRateLimitedError, StepUpRejectedError
from textile_kernel.logging_config import get_logger

logger = get_logger("services.authorization")


class SensitiveAction(str, Enum):
    """Actions that require a fresh step-up credential."""

    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
    EDIT_POSTED_PO = "EDIT_POSTED_PO"
    VOID_DOCUMENT = "VOID_DOCUMENT"
    DELETE_SUPPLIER = "DELETE_SUPPLIER"
    VIEW_BANK_ACCOUNT = "VIEW_BANK_ACCOUNT"


@dataclass(frozen=True)
class StepUpResult:
    """Outcome of one verification attempt."""

    success: bool
    rate_limited: bool = False
    reason: str | None = None

    @classmethod
    def ok(cls) -> StepUpResult:
        return cls(success=True)

    @classmethod
    def rejected(cls, reason: str = "Invalid credential") -> StepUpResult:
        return cls(success=False, reason=reason)

    @classmethod
    def too_many_attempts(cls, reason: str = "Too many failed attempts") -> StepUpResult:
        return cls(success=False, rate_limited=True, reason=reason)


@runtime_checkable
class StepUpVerifier(Protocol):
    """External check: is ``credential`` valid for ``actor_id`` and ``action``?"""

    def verify(
        self,
        actor_id: UUID,
        action: SensitiveAction,
        credential: str | None,
    ) -> StepUpResult: ...


class StepUpGate:
    """
    Turns a verifier result into an exception or a pass.

    Contract:
        ``require`` returns None on success and raises otherwise.  Callers
        invoke it before the first write of their unit of work.
    """

    def __init__(self, verifier: StepUpVerifier | None, enforce: bool = True):
        self._verifier = verifier
        self._enforce = enforce

    def require(
        self,
        actor_id: UUID,
        action: SensitiveAction,
        credential: str | None,
    ) -> None:
        if not self._enforce:
            logger.warning(
                "step_up_bypassed",
                extra={"actor_id": str(actor_id), "action": action.value},
            )
            return
        if self._verifier is None:
            raise StepUpRejectedError(actor_id, action.value, "No step-up verifier configured")

        result = self._verifier.verify(actor_id, action, credential)
        if result.success:
            logger.info(
                "step_up_verified",
                extra={"actor_id": str(actor_id), "action": action.value},
            )
            return

        logger.warning(
            "step_up_failed",
            extra={
                "actor_id": str(actor_id),
                "action": action.value,
                "rate_limited": result.rate_limited,
            },
        )
        if result.rate_limited:
            raise StepUpRateLimitedError(actor_id, action.value, result.reason)
        raise StepUpRejectedError(actor_id, action.value, result.reason)
