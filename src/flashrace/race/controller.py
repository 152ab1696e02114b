"""
RunController - lifecycle of one race run.

Usage:
    controller = RunController(provider)
    controller.add_listener(print)
    controller.start(5)          # returns RunContext, lanes run as tasks
    await controller.wait()      # until stop() / auto-timeout / fatal lane error

Cancellation is by token: stop() bumps the token, so every lane loop sees
is_live(ctx) == False at its next resumption and exits without touching
state. Network calls made through run_operation() are additionally tracked
and cancelled by stop(); the awaiting lane gets OperationAborted.
"""

import asyncio
import contextvars
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..core.errors import OperationAborted
from ..core.sender import LANES, Lane, TransactionProvider
from ..utils.logger import get_logger, log_race_event
from ..utils.trace_context import bind_run_trace
from .context import RunContext, parse_duration_seconds
from .events import EndReason, LaneEventKind, RaceEvent, now_ms
from .lane_loop import LaneLoop
from .lane_state import LaneStatus
from .metrics import MetricsAggregator, record_run_end

logger = get_logger(__name__)

EventListener = Callable[[RaceEvent], None]

# presentation hold after a confirm before the next send animation may play
LANE_PACKET_ANIMATION_MS: Dict[Lane, int] = {
    Lane.FLASHBLOCKS: 420,
    Lane.NORMAL: 560,
}

OUT_OF_FUNDS_MESSAGE = (
    "Demo wallet is out of gas funds ({lane} lane send failed). Fund the wallet and try again."
)


class RunController:

    def __init__(
        self,
        provider: TransactionProvider,
        poll_interval: float = 0.09,
        retry_delay: float = 0.04,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            provider: Live or spoof transaction provider shared by both lanes
            poll_interval: Seconds between confirmation checks
            retry_delay: Seconds to wait before retrying a failed send
            clock: Wall clock used for deadlines
            monotonic: Monotonic clock used for latencies
        """
        self.provider = provider
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay
        self.clock = clock
        self.monotonic = monotonic
        self.metrics = MetricsAggregator()

        self._token = 0
        self._deadline: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._done: Optional[asyncio.Event] = None
        self._lane_tasks: Dict[Lane, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._confirm_hold_until: Dict[Lane, float] = {lane: 0.0 for lane in LANES}
        self._listeners: List[EventListener] = []
        self.last_end_reason: Optional[EndReason] = None

    # ---------- state ----------

    @property
    def token(self) -> int:
        return self._token

    @property
    def is_running(self) -> bool:
        return self._deadline is not None

    @property
    def remaining_seconds(self) -> float:
        if self._deadline is None:
            return 0.0
        return max(0.0, self._deadline - self.clock())

    def is_live(self, ctx: RunContext) -> bool:
        return ctx.token == self._token and self.clock() < ctx.deadline

    # ---------- listeners ----------

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: RaceEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"[Race] Listener error on {event.type} event: {e}")

    # ---------- lifecycle ----------

    def start(self, duration_seconds: float) -> RunContext:
        """Start a run, superseding any live one.

        Raises:
            ValueError: duration is not a finite number of seconds in [1, 60]
        """
        duration = parse_duration_seconds(duration_seconds)
        if duration is None:
            raise ValueError(f"duration must be a finite number of seconds in [1, 60], got {duration_seconds!r}")

        loop = asyncio.get_running_loop()
        if self.is_running:
            self.stop(EndReason.SUPERSEDED)

        self._token += 1
        started_at = self.clock()
        ctx = RunContext(token=self._token, deadline=started_at + duration)
        self._deadline = ctx.deadline
        self._confirm_hold_until = {lane: 0.0 for lane in LANES}
        self.metrics.reset()
        self._done = asyncio.Event()
        self.last_end_reason = None
        self._timer = loop.call_later(duration, self._on_timeout, ctx.token)

        event = RaceEvent.start(
            ctx.token,
            duration_ms=round(duration * 1000),
            started_at_ms=int(started_at * 1000),
            deadline_ms=int(ctx.deadline * 1000),
        )
        log_race_event("run_start", ctx.run_id, {"duration_s": duration})
        logger.info(f"[Race] {ctx.run_id} started for {duration:g}s")
        self.emit(event)

        task_context = contextvars.copy_context()
        task_context.run(bind_run_trace, ctx.run_id)
        for lane in LANES:
            lane_loop = LaneLoop(lane, self, poll_interval=self.poll_interval, retry_delay=self.retry_delay)
            task = asyncio.create_task(
                lane_loop.run(ctx),
                name=f"lane-{lane.value}-{ctx.token}",
                context=task_context.copy(),
            )
            task.add_done_callback(lambda t, c=ctx: self._on_lane_exit(t, c))
            self._lane_tasks[lane] = task
        return ctx

    def stop(self, reason: EndReason = EndReason.MANUAL, message: Optional[str] = None) -> None:
        """Invalidate the run token and force both lanes to stopped. Idempotent."""
        token = self._token
        self._token += 1
        if not self.is_running:
            return

        self._deadline = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        for task in list(self._inflight):
            task.cancel()
        self._inflight.clear()
        self._confirm_hold_until = {lane: 0.0 for lane in LANES}

        for lane in LANES:
            self.metrics.lane(lane).transition_to(LaneStatus.STOPPED, force=True)

        self.last_end_reason = reason
        record_run_end(reason.value)
        lanes = self.metrics.snapshot()
        log_race_event("run_end", f"run-{token}", {"reason": reason.value, "lanes": lanes})
        logger.info(f"[Race] run-{token} ended: {reason.value}" + (f" ({message})" if message else ""))
        self.emit(RaceEvent.end(token, reason, lanes, message=message))

        if self._done is not None:
            self._done.set()

    def _on_timeout(self, token: int) -> None:
        if token == self._token:
            self.stop(EndReason.TIMEOUT)

    def _on_lane_exit(self, task: asyncio.Task, ctx: RunContext) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and ctx.token == self._token:
            logger.error(f"[Race] {task.get_name()} crashed: {error!r}")
            self.stop(EndReason.ERROR, message=str(error))

    def fail_run(self, lane: Lane) -> None:
        """Whole-run stop after a lane hit an out-of-funds send."""
        self.stop(EndReason.INSUFFICIENT_FUNDS, message=OUT_OF_FUNDS_MESSAGE.format(lane=lane.value))

    async def wait(self) -> Optional[EndReason]:
        """Wait for the current run to end, return its end reason."""
        done = self._done
        if done is not None:
            await done.wait()
        return self.last_end_reason

    async def run(self, duration_seconds: float) -> Dict[str, Any]:
        """Start a run, wait for it to end, return the final lane snapshot."""
        self.start(duration_seconds)
        await self.wait()
        return self.metrics.snapshot()

    async def close(self) -> None:
        self.stop(EndReason.ABORTED)
        tasks = [task for task in self._lane_tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._lane_tasks.clear()

    # ---------- lane services ----------

    async def run_operation(self, ctx: RunContext, operation: Awaitable[Any]) -> Any:
        """Await a network operation that stop() may abort.

        Raises:
            OperationAborted: run stopped before or while the operation ran
        """
        if not self.is_live(ctx):
            if asyncio.iscoroutine(operation):
                operation.close()
            raise OperationAborted(f"{ctx.run_id} is no longer live")

        task = asyncio.ensure_future(operation)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise OperationAborted(f"{ctx.run_id} stopped during operation") from None

    def send_animation_delay_ms(self, lane: Lane) -> int:
        hold_until = self._confirm_hold_until.get(lane, 0.0)
        return max(0, int((hold_until - self.monotonic()) * 1000))

    def hold_after_confirm(self, lane: Lane) -> None:
        self._confirm_hold_until[lane] = self.monotonic() + LANE_PACKET_ANIMATION_MS[lane] / 1000

    def lane_event(self, ctx: RunContext, lane: Lane, kind: LaneEventKind, **extra: Any) -> None:
        state = self.metrics.lane(lane).to_dict()
        self.emit(RaceEvent.lane(ctx.token, lane.value, kind, state, **extra))

    def get_stats(self) -> dict:
        return {
            "token": self._token,
            "running": self.is_running,
            "remaining_ms": int(self.remaining_seconds * 1000),
            "inflight": len(self._inflight),
            "last_end_reason": self.last_end_reason.value if self.last_end_reason else None,
            "lanes": self.metrics.snapshot(),
            "now_ms": now_ms(),
        }
