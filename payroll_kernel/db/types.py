"""
Module: payroll_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money
    columns.  Centralizes precision, rounding, and amount validation so that
    every model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for monetary
      values.
    - to_money() is the ONLY sanctioned conversion from caller input to a
      monetary Decimal.  Non-finite values never get past it.

Failure modes:
    - InvalidAmountError on non-numeric, NaN, or infinite input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy import Enum as SAEnum

from payroll_kernel.exceptions import InvalidAmountError

# Monetary amount with high precision
Money = Annotated[Decimal, Numeric(38, 9)]

# Hours and rates
Hours = Annotated[Decimal, Numeric(12, 4)]

# Per-worker insertion sequence / optimistic version counter
Sequence = Annotated[int, BigInteger]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for notes
LongText = Annotated[str, String(2000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized to decimal_places using the
        specified rounding mode.
    """
    quantize_str = "1" if decimal_places == 0 else "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Convert caller input to a finite Decimal.

    Floats are routed through str() so that 0.1 becomes Decimal("0.1"),
    not its binary expansion.  Booleans are rejected.

    Raises:
        InvalidAmountError: If value is not a finite number.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(value, field=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidAmountError(value, field=field) from exc
    if not result.is_finite():
        raise InvalidAmountError(value, field=field)
    return result


def positive_money(value: Any, field: str = "amount") -> Decimal:
    """Like to_money(), but the result must be strictly greater than zero."""
    result = to_money(value, field=field)
    if result <= ZERO:
        raise InvalidAmountError(value, field=field)
    return result


def non_negative_money(value: Any, field: str = "amount") -> Decimal:
    """Like to_money(), but zero is accepted."""
    result = to_money(value, field=field)
    if result < ZERO:
        raise InvalidAmountError(value, field=field)
    return result


def enum_type(enum_cls: type[Enum]) -> SAEnum:
    """
    Column type for a str-valued Enum, stored as its value in VARCHAR(20).

    Loads back as the enum member, never as a bare string.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        create_constraint=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
