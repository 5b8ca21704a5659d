import math
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

# Leading decimal number, the way a browser's parseFloat reads "2 cups" or "1.5kg"
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_quantity(value: Union[int, float, str, None]) -> Optional[float]:
    """Best-effort numeric quantity from a recipe ingredient.

    Returns None when nothing usable is found; callers fall back to 1.
    "1/2" reads as 1 and "a pinch" as None. Negative and non-finite
    values are rejected.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        m = _LEADING_NUMBER.match(value)
        if not m:
            return None
        number = float(m.group(1))
    else:
        return None

    if not math.isfinite(number) or number < 0:
        return None
    return number


def round_display(value: float, places: int = 1) -> float:
    """Half-up rounding for quantities shown to the user (2.25 -> 2.3)."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
