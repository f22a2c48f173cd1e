"""
Typed Exception Hierarchy for the Textile Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the inventory core (screens, report jobs, import scripts) must be
able to tell apart a bad input, a stock shortfall, a rejected step-up
credential and a lock timeout without parsing message strings.

Every exception in this module:
  1. Is a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (item ids, quantities, states)

Example:
    try:
        production.issue_materials(request, actor_id)
    except InsufficientStockError as e:
        show_error(code=e.code, sku=e.sku, available=e.available)
    except LockTimeoutError:
        retry_whole_request()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TextileKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- DocumentNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- AuthorizationError
    |   +-- StepUpRejectedError
    |   +-- StepUpRateLimitedError
    |
    +-- StateConflictError
    |   +-- InvalidTransitionError
    |   +-- DocumentNotEditableError
    |   +-- DocumentHasDependentsError
    |   +-- MaterialShortageError
    |
    +-- ConcurrencyError
    |   +-- LockTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Malformed or out-of-range input
----------------|-----------------------------|-----------------------------------------
Not found       | ITEM_NOT_FOUND              | Item id/SKU doesn't exist
                | DOCUMENT_NOT_FOUND          | PO / WO / return id doesn't exist
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Consumption would go below zero
----------------|-----------------------------|-----------------------------------------
Authorization   | STEP_UP_REJECTED            | Step-up credential rejected
                | STEP_UP_RATE_LIMITED        | Too many failed step-up attempts
----------------|-----------------------------|-----------------------------------------
State           | INVALID_TRANSITION          | Status change not allowed
                | DOCUMENT_NOT_EDITABLE       | Edit outside DRAFT without step-up
                | DOCUMENT_HAS_DEPENDENTS     | Cancel blocked by GRNs / FG receipts
                | MATERIAL_SHORTAGE           | Work order plan has a shortage
----------------|-----------------------------|-----------------------------------------
Concurrency     | LOCK_TIMEOUT                | Lock wait / deadlock (retryable)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of a ledger row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. AUTHORIZATION IS NOT A BUSINESS ERROR:

    except AuthorizationError as e:
        prompt_for_pin_again(rate_limited=isinstance(e, StepUpRateLimitedError))

2. CONCURRENCY ERRORS ARE RETRYABLE AS A WHOLE:

    except ConcurrencyError as e:
        if e.retryable:
            rerun_entire_workflow()   # never a partial retry

3. EVERYTHING ELSE IS FINAL:
    Validation and state-conflict errors are raised before the first write.
    Insufficient stock is raised inside the transaction, which is rolled back.
"""

from decimal import Decimal
from typing import Any


class TextileKernelError(Exception):
    """
    Base exception for all textile kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TEXTILE_KERNEL_ERROR"
    retryable: bool = False


# Validation


class ValidationError(TextileKernelError):
    """Malformed or out-of-range input, rejected before any write."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Not found


class NotFoundError(TextileKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    """Stock item does not exist."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: Any):
        self.item_id = str(item_id)
        super().__init__(f"Item not found: {item_id}")


class DocumentNotFoundError(NotFoundError):
    """Business document does not exist."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_type: str, document_id: Any):
        self.document_type = document_type
        self.document_id = str(document_id)
        super().__init__(f"{document_type} not found: {document_id}")


# Stock


class InsufficientStockError(TextileKernelError):
    """
    Consumption would drive quantity on hand below zero.

    Raised inside the workflow transaction; the caller's unit of work rolls
    back every write made so far.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: Any,
        requested: Decimal,
        available: Decimal,
        sku: str | None = None,
    ):
        self.item_id = str(item_id)
        self.sku = sku
        self.requested = requested
        self.available = available
        label = sku or self.item_id
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, "
            f"available {available}"
        )


# Authorization


class AuthorizationError(TextileKernelError):
    """Base exception for step-up authorization failures."""

    code: str = "AUTHORIZATION_FAILED"

    def __init__(self, actor_id: Any, action: str, reason: str | None = None):
        self.actor_id = str(actor_id)
        self.action = action
        self.reason = reason
        super().__init__(
            f"Step-up authorization failed for {action} by {actor_id}"
            + (f": {reason}" if reason else "")
        )


class StepUpRejectedError(AuthorizationError):
    """Step-up credential was rejected by the external verifier."""

    code: str = "STEP_UP_REJECTED"


class StepUpRateLimitedError(AuthorizationError):
    """Step-up attempts exhausted; caller must wait before retrying."""

    code: str = "STEP_UP_RATE_LIMITED"


# State conflicts


class StateConflictError(TextileKernelError):
    """Base exception for operations not allowed in the document's state."""

    code: str = "STATE_CONFLICT"


class InvalidTransitionError(StateConflictError):
    """Requested status change is not a valid transition."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        document_type: str,
        document_id: Any,
        from_state: str,
        action: str,
    ):
        self.document_type = document_type
        self.document_id = str(document_id)
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Cannot {action} {document_type} {document_id} "
            f"in status {from_state}"
        )


class DocumentNotEditableError(StateConflictError):
    """Document can only be edited in DRAFT (or with elevated authorization)."""

    code: str = "DOCUMENT_NOT_EDITABLE"

    def __init__(self, document_type: str, document_id: Any, status: str):
        self.document_type = document_type
        self.document_id = str(document_id)
        self.status = status
        super().__init__(
            f"{document_type} {document_id} is not editable in status {status}"
        )


class DocumentHasDependentsError(StateConflictError):
    """Cancellation blocked because dependent documents already exist."""

    code: str = "DOCUMENT_HAS_DEPENDENTS"

    def __init__(
        self,
        document_type: str,
        document_id: Any,
        dependent_type: str,
        dependent_count: int,
    ):
        self.document_type = document_type
        self.document_id = str(document_id)
        self.dependent_type = dependent_type
        self.dependent_count = dependent_count
        super().__init__(
            f"{document_type} {document_id} has {dependent_count} "
            f"{dependent_type} record(s)"
        )


class MaterialShortageError(StateConflictError):
    """Work order creation blocked by a material shortage."""

    code: str = "MATERIAL_SHORTAGE"

    def __init__(self, finished_good_id: Any, shortages: list[dict[str, Any]]):
        self.finished_good_id = str(finished_good_id)
        self.shortages = shortages
        super().__init__(
            f"Material shortage for finished good {finished_good_id}: "
            f"{len(shortages)} material(s) short"
        )


# Concurrency


class ConcurrencyError(TextileKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class LockTimeoutError(ConcurrencyError):
    """Lock wait exceeded the transaction timeout, or a deadlock was detected."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Lock conflict during {operation}; retry the whole operation"
            + (f" ({detail})" if detail else "")
        )


# Immutability


class ImmutabilityError(TextileKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
