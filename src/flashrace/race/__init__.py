from .context import RunContext
from .controller import RunController
from .events import EndReason, LaneEventKind, RaceEvent
from .lane_state import LaneState, LaneStatus
from .metrics import MetricsAggregator

__all__ = [
    "RunContext",
    "RunController",
    "EndReason",
    "LaneEventKind",
    "RaceEvent",
    "LaneState",
    "LaneStatus",
    "MetricsAggregator",
]
