"""
Canonical JSON serialization (JCS, RFC 8785).

Two documents with the same keys and values produce the same bytes no matter
the key insertion order, the whitespace they were read with, or whether a
number was read as 1 or 1.0.
"""

import json
import math
from decimal import Decimal
from typing import Any, Mapping

from badgeforge.errors import CanonicalizationError


def _utf16_order(key: str) -> bytes:
    """Sort key comparing UTF-16 code units, as JCS requires."""
    return key.encode("utf-16-be", "surrogatepass")


def format_number(value: float) -> str:
    """
    Render a float the way ECMAScript Number.prototype.toString does.

    1.0 -> "1", 1e16 -> "10000000000000000", 1e21 -> "1e+21", 1e-7 -> "1e-7".
    """
    if not math.isfinite(value):
        raise CanonicalizationError(f"Non-finite number has no canonical form: {value}")
    if value == 0:
        return "0"

    # repr() gives the shortest digit string that round-trips
    sign, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    point = exponent + len(digits)
    digits = digits.rstrip("0")
    k = len(digits)
    prefix = "-" if value < 0 else ""

    if k <= point <= 21:
        text = digits + "0" * (point - k)
    elif 0 < point <= 21:
        text = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        e = point - 1
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        text = f"{mantissa}e{'+' if e > 0 else '-'}{abs(e)}"
    return prefix + text


def _serialize(value: Any) -> str:
    if isinstance(value, Mapping):
        members = {}
        for key, item in value.items():
            name = key if isinstance(key, str) else str(key)
            if name in members:
                raise CanonicalizationError(f"Duplicate key after stringification: {name!r}")
            members[name] = item
        return "{" + ",".join(
            _serialize(name) + ":" + _serialize(members[name])
            for name in sorted(members, key=_utf16_order)
        ) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_serialize(item) for item in value) + "]"
    if isinstance(value, str):
        # json's minimal escaping matches JCS: \" \\ \b \f \n \r \t, other controls as \u00xx
        return json.dumps(value, ensure_ascii=False)
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_number(value)
    raise CanonicalizationError(f"Unsupported type for canonical JSON: {type(value).__name__}")


def canonicalize(document: Any) -> bytes:
    """
    Serialize a document to its canonical UTF-8 JSON bytes.

    Object keys are sorted by UTF-16 code units, arrays keep their order,
    numbers use the shortest ECMAScript form, and all insignificant
    whitespace is dropped.

    Raises:
        CanonicalizationError: If the document contains NaN/Infinity or a
            value that is not JSON-like.
    """
    return _serialize(document).encode("utf-8")


def canonical_text(document: Any) -> str:
    """canonicalize() as a str."""
    return canonicalize(document).decode("utf-8")
