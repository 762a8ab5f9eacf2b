"""Normalization functions for district reference-data ingestion.

All functions accept str | None (or a raw spreadsheet cell) and return the
appropriate type or None.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_SCIENTIFIC_RE = re.compile(r"^(\d+\.?\d*)E\+(\d+)$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: cell_text
# ---------------------------------------------------------------------------

def cell_text(value: Any) -> str | None:
    """Coerce a spreadsheet cell to trimmed text.

    Integral floats render without a fractional part (100001.0 → "100001"),
    which is how the IDs were typed before the spreadsheet got hold of them.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return trim(str(value))


# ---------------------------------------------------------------------------
# Rule 3: parse_int_or_zero
# ---------------------------------------------------------------------------

def parse_int_or_zero(value: Any) -> int:
    """Parse the leading integer of a value; 0 when absent or unparsable.

    "12" → 12, "12 schools" → 12, "3.7" → 3, "" / None / "n/a" → 0.
    Numbers are truncated toward zero.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return 0
        return int(value)
    m = _LEADING_INT_RE.match(str(value))
    return int(m.group(1)) if m else 0


# ---------------------------------------------------------------------------
# Rule 4: expand_scientific_notation
# ---------------------------------------------------------------------------

def expand_scientific_notation(value: str | None) -> str | None:
    """Rewrite '2.91107E+11' as '291107000000'; other values pass through.

    Spreadsheet round-trips turn long numeric IDs into exponent form. The
    digits lost to the mantissa cannot be recovered, so the result is the
    rounded integer the exponent form denotes.
    """
    v = trim(value)
    if v is None:
        return None
    m = _SCIENTIFIC_RE.match(v)
    if not m:
        return v
    try:
        number = Decimal(m.group(1)).scaleb(int(m.group(2)))
    except InvalidOperation:
        return v
    return str(int(number.to_integral_value(rounding=ROUND_HALF_UP)))
