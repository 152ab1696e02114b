"""RunContext - cancellation context handed to lane loops by value."""

import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Optional

from ..config import MAX_DURATION_SECONDS, MIN_DURATION_SECONDS


@dataclass(frozen=True)
class RunContext:
    token: int
    deadline: float  # wall clock, seconds since epoch

    @property
    def run_id(self) -> str:
        return f"run-{self.token}"


def parse_duration_seconds(value: Any) -> Optional[float]:
    """Duration for a boundary value, None when it is not a finite number in range."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    if value < MIN_DURATION_SECONDS or value > MAX_DURATION_SECONDS:
        return None
    return value
