"""
LaneLoop - continuous send/confirm cycle for one lane.

Every state write happens right after an is_live(ctx) check with no await in
between, so a loop that outlives its run never touches the next run's state.
"""

import asyncio
from typing import Optional, Tuple

from ..core.errors import OperationAborted, error_message, is_insufficient_funds_error
from ..core.sender import ConfirmResult, Lane, TransactionHandle
from ..utils.logger import get_logger
from .context import RunContext
from .events import LaneEventKind
from .lane_state import LaneState, LaneStatus
from .metrics import record_send

logger = get_logger(__name__)


class LaneLoop:

    def __init__(self, lane: Lane, controller, poll_interval: float = 0.09, retry_delay: float = 0.04):
        self.lane = lane
        self.controller = controller
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay

    @property
    def state(self) -> LaneState:
        return self.controller.metrics.lane(self.lane)

    def _ensure_live(self, ctx: RunContext) -> None:
        if not self.controller.is_live(ctx):
            raise OperationAborted(f"{ctx.run_id} is no longer live")

    async def run(self, ctx: RunContext) -> None:
        """Send, wait for confirmation, repeat until the run is no longer live."""
        try:
            while self.controller.is_live(ctx):
                sent = await self._send(ctx)
                if sent is None:
                    if self.controller.is_live(ctx):
                        await asyncio.sleep(self.retry_delay)
                    continue
                handle, started_at = sent
                result = await self._wait_for_confirmation(ctx, handle)
                self._record_confirmation(ctx, handle, result, started_at)
        except OperationAborted:
            logger.debug(f"[{self.lane.value}] lane exited ({ctx.run_id})")

    async def _send(self, ctx: RunContext) -> Optional[Tuple[TransactionHandle, float]]:
        """One send attempt; None when the attempt failed and the lane should retry."""
        self._ensure_live(ctx)
        state = self.state
        state.transition_to(LaneStatus.SENDING)
        state.sends_attempted += 1
        state.last_error = None
        started_at = self.controller.monotonic()
        self.controller.lane_event(ctx, self.lane, LaneEventKind.STATUS)

        try:
            handle = await self.controller.run_operation(ctx, self.controller.provider.send(self.lane))
        except OperationAborted:
            raise
        except Exception as e:
            self._ensure_live(ctx)
            message = error_message(e)
            record_send(self.lane, success=False)
            state.last_error = message
            state.transition_to(LaneStatus.ERROR)
            self.controller.lane_event(ctx, self.lane, LaneEventKind.ERROR, error=message)

            if is_insufficient_funds_error(message):
                logger.error(f"[{self.lane.value}] send failed, wallet out of funds: {message}")
                self.controller.fail_run(self.lane)
                raise OperationAborted(message) from e

            logger.warning(f"[{self.lane.value}] send failed: {message}")
            return None

        self._ensure_live(ctx)
        record_send(self.lane, success=True)
        state.transition_to(LaneStatus.WAITING)
        self.controller.lane_event(
            ctx,
            self.lane,
            LaneEventKind.SEND,
            txHash=handle.transaction_id,
            animationDelayMs=self.controller.send_animation_delay_ms(self.lane),
        )
        return handle, started_at

    async def _wait_for_confirmation(self, ctx: RunContext, handle: TransactionHandle) -> ConfirmResult:
        while True:
            self._ensure_live(ctx)
            try:
                result = await self.controller.run_operation(
                    ctx, self.controller.provider.confirm(self.lane, handle.transaction_id)
                )
            except OperationAborted:
                raise
            except Exception as e:
                # poll failures are transient, keep polling
                logger.debug(f"[{self.lane.value}] confirm poll failed: {error_message(e)}")
            else:
                if result.confirmed:
                    return result

            self._ensure_live(ctx)
            await asyncio.sleep(self.poll_interval)

    def _record_confirmation(
        self,
        ctx: RunContext,
        handle: TransactionHandle,
        result: ConfirmResult,
        started_at: float,
    ) -> None:
        self._ensure_live(ctx)
        latency_ms = (self.controller.monotonic() - started_at) * 1000
        self.state.transition_to(LaneStatus.CONFIRMED)
        self.controller.metrics.record_confirmation(self.lane, latency_ms, result.method)
        self.controller.hold_after_confirm(self.lane)
        self.controller.lane_event(
            ctx,
            self.lane,
            LaneEventKind.CONFIRM,
            txHash=handle.transaction_id,
            latencyMs=round(latency_ms, 1),
            method=result.method.value,
            blockNumber=result.block_height,
        )
