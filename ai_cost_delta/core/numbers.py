"""
Numeric coercion for untyped payloads.

Every value read from the account endpoint, the host event feed or the
state file passes through here. Anything that is not a finite number
becomes None ("unknown"); nothing is ever coerced to zero.
"""

import math
from typing import Any, Optional


def to_number(value: Any) -> Optional[float]:
    """Return value as a finite float, or None when it is unknown.

    Args:
        value: Raw value (int, float, numeric string or anything else)

    Returns:
        Finite float, or None for None, booleans, blank or non-numeric
        strings, NaN and infinities
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        if not value.strip():
            return None
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number
