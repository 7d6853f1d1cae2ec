"""
Module: ledger_kernel.db.types
Responsibility: Annotated column aliases and the money helpers shared by
    every model and service.  Centralizes precision and rounding so that all
    amounts are quantized the same way.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and outer packages.

Invariants enforced:
    - Storage precision is Numeric(38, 9); business precision is 2 places.
    - round_money() is the only sanctioned rounding function (ROUND_HALF_UP).
    - No floats: to_money() rejects float input.

Failure modes:
    - TypeError from to_money() on float or unsupported input.
    - decimal.InvalidOperation on non-numeric strings.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import Numeric, String


Money = Annotated[Decimal, Numeric(38, 9)]

# Subject codes, usage codes, status strings
ShortCode = Annotated[str, String(50)]

# Month keys "YYYY-MM"
MonthKey = Annotated[str, String(7)]

LongText = Annotated[str, String(1000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized with the given rounding mode.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str or Decimal into a rounded money Decimal.

    Raises:
        TypeError: on float or any other type.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Money must not be built from {type(value).__name__}")
    if isinstance(value, (int, str)):
        value = Decimal(value)
    if not isinstance(value, Decimal):
        raise TypeError(f"Cannot build money from {type(value).__name__}")
    return round_money(value)
