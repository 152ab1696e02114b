"""
Per-lane latency aggregation plus Prometheus export.

MetricsAggregator owns the LaneState objects of the current run. The running
mean is cumulative over the run, reset only when a new run starts.
"""

from typing import Dict, Optional

from prometheus_client import Counter, Histogram

from ..core.sender import LANES, ConfirmationMethod, Lane
from .lane_state import LaneState

# ========== Prometheus ==========

SENDS_TOTAL = Counter(
    'flashrace_sends_total',
    'Lane transaction sends by outcome',
    ['lane', 'status']
)

CONFIRMATIONS_TOTAL = Counter(
    'flashrace_confirmations_total',
    'Observed confirmations by lane and method',
    ['lane', 'method']
)

CONFIRMATION_LATENCY = Histogram(
    'flashrace_confirmation_latency_seconds',
    'Send-issued to confirmed latency per lane',
    ['lane'],
    buckets=[0.1, 0.25, 0.5, 0.8, 1.0, 1.5, 2.5, 5.0, 10.0]
)

RUNS_TOTAL = Counter(
    'flashrace_runs_total',
    'Finished runs by end reason',
    ['reason']
)


def record_send(lane: Lane, success: bool) -> None:
    SENDS_TOTAL.labels(lane=lane.value, status='ok' if success else 'err').inc()


def record_run_end(reason: str) -> None:
    RUNS_TOTAL.labels(reason=reason).inc()


# ========== Aggregation ==========

class MetricsAggregator:

    def __init__(self):
        self._lanes: Dict[Lane, LaneState] = {}
        self.reset()

    def reset(self) -> None:
        """Fresh idle state for every lane."""
        self._lanes = {lane: LaneState() for lane in LANES}

    def lane(self, lane: Lane) -> LaneState:
        return self._lanes[lane]

    def record_confirmation(
        self,
        lane: Lane,
        latency_ms: float,
        method: Optional[ConfirmationMethod] = None,
    ) -> LaneState:
        state = self._lanes[lane]
        count = state.confirmations_observed
        previous_average = state.average_latency_ms or 0.0

        state.latest_latency_ms = latency_ms
        state.average_latency_ms = (previous_average * count + latency_ms) / (count + 1)
        state.confirmations_observed = count + 1
        if method is not None and method != ConfirmationMethod.NONE:
            state.last_confirmation_method = method

        CONFIRMATIONS_TOTAL.labels(
            lane=lane.value,
            method=(method or ConfirmationMethod.NONE).value,
        ).inc()
        CONFIRMATION_LATENCY.labels(lane=lane.value).observe(latency_ms / 1000)
        return state

    def snapshot(self) -> Dict[str, dict]:
        return {lane.value: state.to_dict() for lane, state in self._lanes.items()}
