"""
Values -- exact decimal arithmetic for quantities, costs and values.

Responsibility:
    Single entry point for turning caller input into ``Decimal`` and for the
    few arithmetic helpers the costing engine needs (safe division,
    quantization to storage scale, balance tolerance).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - No binary floating point inside the core.  Floats are only accepted at
      the boundary and go through ``str()`` first, so ``0.1`` becomes
      ``Decimal("0.1")`` and not ``Decimal(0.1000000000000000055...)``.
    - Division by zero quantity yields zero, never an error or NaN.
    - Every persisted value is quantized to STORAGE_PLACES so a database
      round trip is lossless.

Failure modes:
    - ValidationError for None, bool, NaN, Infinity or unparseable input.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Iterator

from textile_kernel.exceptions import ValidationError

# Matches Numeric(38, 9) in db/base.py
STORAGE_PLACES = 9
_QUANTUM = Decimal(1).scaleb(-STORAGE_PLACES)

# Working precision for intermediate products (38-digit columns need headroom)
ARITHMETIC_PRECISION = 60

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str | None = None) -> Decimal:
    """
    Convert boundary input to an exact Decimal.

    Args:
        value: Decimal, int, str or float.  Floats go through ``str()``.
        field: Field name reported on validation failure.

    Returns:
        A finite Decimal.

    Raises:
        ValidationError: If value is None, bool, non-finite or unparseable.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field or 'value'} must be a number, got {value!r}", field)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(
                f"{field or 'value'} is not a valid decimal: {value!r}", field
            ) from None
    else:
        raise ValidationError(
            f"{field or 'value'} has unsupported type {type(value).__name__}", field
        )
    if not result.is_finite():
        raise ValidationError(f"{field or 'value'} must be finite, got {value!r}", field)
    return result


def to_positive_decimal(value: Any, field: str | None = None) -> Decimal:
    """Convert and require > 0."""
    result = to_decimal(value, field)
    if result <= ZERO:
        raise ValidationError(f"{field or 'value'} must be positive, got {result}", field)
    return result


def to_non_negative_decimal(value: Any, field: str | None = None) -> Decimal:
    """Convert and require >= 0."""
    result = to_decimal(value, field)
    if result < ZERO:
        raise ValidationError(f"{field or 'value'} must not be negative, got {result}", field)
    return result


@contextmanager
def exact_context() -> Iterator[None]:
    """Decimal context wide enough that products of stored values never round."""
    with localcontext() as ctx:
        ctx.prec = ARITHMETIC_PRECISION
        ctx.rounding = ROUND_HALF_UP
        yield


def quantize_value(value: Decimal, places: int = STORAGE_PLACES) -> Decimal:
    """Round to storage scale using ROUND_HALF_UP."""
    with exact_context():
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide, returning zero when the denominator is zero."""
    if denominator == ZERO:
        return ZERO
    return numerator / denominator


def balance_tolerance() -> Decimal:
    """
    Tolerance for ``total_value == qty * avg_cost``.

    total_value is always the storage-scale rounding of qty * avg_cost, so
    the two never differ by more than one quantum.
    """
    return _QUANTUM


def within_tolerance(total_value: Decimal, qty: Decimal, avg_cost: Decimal) -> bool:
    """True if total_value matches qty * avg_cost within balance_tolerance()."""
    with exact_context():
        return abs(total_value - qty * avg_cost) <= balance_tolerance()


def to_number(value: Decimal | None) -> int | float | None:
    """
    Convert a Decimal to a native number for display/report consumers.

    Only used by DTO ``to_dict()`` methods; never inside core arithmetic.
    """
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)
