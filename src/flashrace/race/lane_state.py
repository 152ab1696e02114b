"""
LaneState - per-lane status machine and counters.

    idle -> sending -> waiting -> confirmed -> sending ...
              |           |
              +-> error <-+        (error -> sending on retry)

`stopped` is terminal and only written by RunController (force=True).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set

from ..core.sender import ConfirmationMethod


class LaneStatus(Enum):
    IDLE = "idle"
    SENDING = "sending"
    WAITING = "waiting"
    CONFIRMED = "confirmed"
    ERROR = "error"
    STOPPED = "stopped"


class InvalidLaneTransitionError(Exception):
    pass


VALID_TRANSITIONS: Dict[LaneStatus, Set[LaneStatus]] = {
    LaneStatus.IDLE: {LaneStatus.SENDING},
    LaneStatus.SENDING: {LaneStatus.WAITING, LaneStatus.ERROR},
    LaneStatus.WAITING: {LaneStatus.CONFIRMED, LaneStatus.ERROR},
    LaneStatus.CONFIRMED: {LaneStatus.SENDING},
    LaneStatus.ERROR: {LaneStatus.SENDING},
    LaneStatus.STOPPED: set(),
}


@dataclass
class LaneState:
    status: LaneStatus = LaneStatus.IDLE
    sends_attempted: int = 0
    confirmations_observed: int = 0
    latest_latency_ms: Optional[float] = None
    average_latency_ms: Optional[float] = None
    last_confirmation_method: Optional[ConfirmationMethod] = None
    last_error: Optional[str] = None
    transitions: int = field(default=0, repr=False)

    def can_transition_to(self, new_status: LaneStatus) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: LaneStatus, force: bool = False) -> None:
        """
        Raises:
            InvalidLaneTransitionError: transition not in VALID_TRANSITIONS and not forced
        """
        if not force and not self.can_transition_to(new_status):
            raise InvalidLaneTransitionError(
                f"Invalid transition: {self.status.value} -> {new_status.value}"
            )
        self.status = new_status
        self.transitions += 1

    @property
    def is_final(self) -> bool:
        return self.status == LaneStatus.STOPPED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "sendsAttempted": self.sends_attempted,
            "confirmationsObserved": self.confirmations_observed,
            "latestLatencyMs": self.latest_latency_ms,
            "averageLatencyMs": self.average_latency_ms,
            "lastConfirmationMethod": (
                self.last_confirmation_method.value if self.last_confirmation_method else None
            ),
            "lastError": self.last_error,
        }
