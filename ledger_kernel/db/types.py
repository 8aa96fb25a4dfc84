"""
Module: ledger_kernel.db.types
Responsibility: Annotated column type aliases, the enum-as-string column
    type, and the single rounding function for monetary amounts.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  Amounts are Decimal, stored as Numeric(38, 9)
      and quantized to two places with ROUND_HALF_UP before they are
      persisted or compared.
    - Enum columns always hold the member's lowercase value and load back
      as enum members.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy.types import TypeDecorator

# Monetary amount, 38 digits total, 9 decimal places of storage
Money = Annotated[Decimal, Numeric(38, 9)]

# Percentage rate (e.g. withholding rate 0..100)
Rate = Annotated[Decimal, Numeric(9, 4)]

# Monotonic sequence number
Sequence = Annotated[int, BigInteger]

# SHA-256 hash as hex string
PayloadHash = Annotated[str, String(64)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]

# Amounts are carried at the smallest currency denomination
AMOUNT_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def round_money(
    value: Decimal | int | str,
    decimal_places: int = AMOUNT_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only rounding function used for amounts.  Integers and
    numeric strings are accepted; floats are rejected.

    Raises:
        TypeError: If value is a float.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    if not isinstance(value, Decimal):
        value = Decimal(value)
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


class EnumString(TypeDecorator):
    """
    str-Enum stored as its value in a VARCHAR column.

    Contract:
        Binds either an enum member or its raw value; loads as the member.

    Guarantees:
        - process_bind_param validates the value against the enum.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = String
    cache_ok = True

    def __init__(self, enum_class: type[Enum], length: int = 30):
        super().__init__(length)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self.enum_class(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class(value)
