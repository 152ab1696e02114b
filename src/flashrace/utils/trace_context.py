"""
Run trace ids via contextvars, picked up by TraceIdFilter for every log line.

RunController binds the trace inside a copied context before spawning the lane
tasks, so each run's log lines carry that run's id and nothing leaks into the
caller's context.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

_current_trace: ContextVar[Optional['RunTrace']] = ContextVar('current_run_trace', default=None)


@dataclass
class RunTrace:
    """Trace of one race run"""
    trace_id: str
    run_id: str


def bind_run_trace(run_id: str) -> RunTrace:
    """Create a trace for run_id and make it current in this context"""
    trace = RunTrace(trace_id=f"{run_id}:{uuid.uuid4().hex[:8]}", run_id=run_id)
    _current_trace.set(trace)
    return trace


def clear_trace() -> None:
    _current_trace.set(None)


def get_trace_id() -> Optional[str]:
    """Current trace_id (for the logger)"""
    trace = _current_trace.get()
    return trace.trace_id if trace else None
