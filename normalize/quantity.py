"""Kubernetes resource quantity parsing and formatting.

Quantities are parsed with Decimal and converted to integer milli-cores or
bytes, rounding up the way the API server's MilliValue()/Value() do. All
recommendation arithmetic downstream stays in those integer units.
"""
import math
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

KIB = 1024
MIB = 1024 ** 2
GIB = 1024 ** 3

_BINARY_SUFFIXES = {
    "Ki": Decimal(1024),
    "Mi": Decimal(1024) ** 2,
    "Gi": Decimal(1024) ** 3,
    "Ti": Decimal(1024) ** 4,
    "Pi": Decimal(1024) ** 5,
    "Ei": Decimal(1024) ** 6,
}

_DECIMAL_SUFFIXES = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}

Quantity = Union[str, int, float, Decimal]


class QuantityError(ValueError):
    """Raised for strings that are not valid Kubernetes quantities"""
    pass


def parse_quantity(value: Quantity) -> Decimal:
    """Parse a quantity such as ``250m``, ``1.5``, ``512Mi`` or ``1e3`` into base units."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    s = str(value).strip()
    if not s:
        raise QuantityError("empty quantity")

    multiplier = Decimal(1)
    number = s
    if s[-2:] in _BINARY_SUFFIXES:
        multiplier = _BINARY_SUFFIXES[s[-2:]]
        number = s[:-2]
    elif s[-1] in _DECIMAL_SUFFIXES:
        multiplier = _DECIMAL_SUFFIXES[s[-1]]
        number = s[:-1]

    try:
        parsed = Decimal(number)
    except InvalidOperation:
        raise QuantityError(f"invalid quantity: {value!r}")
    if not parsed.is_finite():
        raise QuantityError(f"invalid quantity: {value!r}")
    return parsed * multiplier


def to_millicores(value: Quantity) -> int:
    """CPU quantity in milli-cores, rounded up."""
    return int(math.ceil(parse_quantity(value) * 1000))


def to_bytes(value: Quantity) -> int:
    """Memory quantity in bytes, rounded up."""
    return int(math.ceil(parse_quantity(value)))


def safe_millicores(value: Optional[Quantity]) -> int:
    """Like to_millicores, but missing or malformed values count as zero."""
    if value is None:
        return 0
    try:
        return to_millicores(value)
    except QuantityError:
        return 0


def safe_bytes(value: Optional[Quantity]) -> int:
    """Like to_bytes, but missing or malformed values count as zero."""
    if value is None:
        return 0
    try:
        return to_bytes(value)
    except QuantityError:
        return 0


def format_millicores(millicores: int) -> str:
    return f"{millicores}m"


def format_mebibytes(num_bytes: int) -> str:
    """Whole mebibytes, truncating any fractional MiB."""
    return f"{num_bytes // MIB}Mi"


def format_memory(num_bytes: int) -> str:
    """Human readable memory for display."""
    if num_bytes >= GIB:
        return f"{num_bytes / GIB:.1f}Gi"
    if num_bytes >= MIB:
        return f"{num_bytes / MIB:.0f}Mi"
    return f"{num_bytes / KIB:.0f}Ki"
