"""Small numeric helpers shared by the pipeline stages."""

from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves rounded toward +infinity.

    Python's ``round`` rounds halves to even; published counts in demand
    documents round 2.5 to 3.
    """
    return int(math.floor(value + 0.5))


def _fmt(value: float, *, decimals: int = 0) -> str:
    """Return a string with thousands separators for logging."""
    fmt = f"{{:,.{decimals}f}}"
    return fmt.format(float(value))
