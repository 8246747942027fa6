"""Value formatting for rendered markup.

Every placeholder value passes through format_value() before it is written
into markup, so full renders and patch operations produce identical text.
"""

import json
import math
from typing import Any

# Decimal places used for non-integral floats, per quality level
PRECISION: dict[str, int] = {
    "low": 0,
    "medium": 1,
    "high": 3,
}


def precision_for(quality: str | None) -> int:
    """Map a quality level to decimal places (high when unset)."""
    return PRECISION.get(quality or "high", PRECISION["high"])


def format_number(value: int | float, precision: int = 3) -> str:
    """Format a number for markup.

    Integral values never carry a fractional part; other floats are rounded
    to the given precision with trailing zeros removed.

    Examples:
        >>> format_number(12.0)
        '12'
        >>> format_number(3.14159, precision=1)
        '3.1'
        >>> format_number(2.5, precision=0)
        '2'
    """
    if isinstance(value, int):
        return str(value)
    if math.isnan(value) or math.isinf(value):
        return "0"
    if value.is_integer():
        return str(int(value))

    rounded = round(value, precision)
    if precision == 0 or float(rounded).is_integer():
        return str(int(rounded))
    return f"{rounded:.{precision}f}".rstrip("0").rstrip(".")


def format_value(value: Any, precision: int = 3) -> str:
    """Format any data-tree value as placeholder text.

    Args:
        value: Resolved value
        precision: Decimal places for floats

    Returns:
        "" for None, "true"/"false" for booleans, comma-joined lists,
        compact JSON for mappings and str() for everything else
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return format_number(value, precision)
    if isinstance(value, list | tuple):
        return ",".join(format_value(item, precision) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return str(value)
