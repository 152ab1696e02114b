"""
Offline stand-in for chain interaction.

A spoof transaction id carries everything needed to validate it later, so no
table of issued transactions is kept:

    0x | lane code (2 hex) | created-at epoch ms (12 hex) | random (50 hex)

Confirmation is reported once the lane's fixed delay has passed since the
encoded creation time.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from .sender import ConfirmationMethod, ConfirmResult, Lane, TransactionHandle

SPOOF_CONFIRMATION_DELAY_MS: Dict[Lane, int] = {
    Lane.FLASHBLOCKS: 800,
    Lane.NORMAL: 2_500,
}

SPOOF_FROM_BY_LANE: Dict[Lane, str] = {
    Lane.FLASHBLOCKS: "0x00000000000000000000000000000000000000F1",
    Lane.NORMAL: "0x00000000000000000000000000000000000000F2",
}

SPOOF_LANE_CODE: Dict[Lane, str] = {
    Lane.FLASHBLOCKS: "f1",
    Lane.NORMAL: "f2",
}

_LANE_BY_CODE = {code: lane for lane, code in SPOOF_LANE_CODE.items()}


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SpoofRecord:
    lane: Lane
    created_at_ms: int


def build_spoof_transaction_id(lane: Lane, created_at_ms: int) -> str:
    timestamp_hex = format(int(created_at_ms), "012x")[-12:]
    return f"0x{SPOOF_LANE_CODE[lane]}{timestamp_hex}{secrets.token_hex(25)}"


def parse_spoof_transaction_id(transaction_id: str) -> Optional[SpoofRecord]:
    raw = transaction_id[2:].lower() if transaction_id.startswith("0x") else transaction_id.lower()
    lane = _LANE_BY_CODE.get(raw[:2])
    if lane is None:
        return None
    try:
        created_at_ms = int(raw[2:14], 16)
    except ValueError:
        return None
    return SpoofRecord(lane=lane, created_at_ms=created_at_ms)


class SpoofEngine:
    """Deterministic send/confirm pair with fixed per-lane confirmation delay."""

    def __init__(
        self,
        methods: Mapping[Lane, ConfirmationMethod],
        delays_ms: Optional[Mapping[Lane, int]] = None,
        clock: Callable[[], int] = wall_clock_ms,
    ):
        """
        Args:
            methods: Method tag reported per lane, matching the lane's live strategy
            delays_ms: Confirmation delay per lane (defaults to 800 / 2500 ms)
            clock: Wall clock in epoch milliseconds
        """
        self.methods = dict(methods)
        self.delays_ms = dict(delays_ms or SPOOF_CONFIRMATION_DELAY_MS)
        self._clock = clock

    def submit(self, lane: Lane) -> TransactionHandle:
        return TransactionHandle(
            transaction_id=build_spoof_transaction_id(lane, self._clock()),
            from_address=SPOOF_FROM_BY_LANE[lane],
        )

    def confirm(self, lane: Lane, transaction_id: str) -> ConfirmResult:
        record = parse_spoof_transaction_id(transaction_id)
        if record is None or record.lane != lane:
            return ConfirmResult.not_found()
        if self._clock() - record.created_at_ms < self.delays_ms[lane]:
            return ConfirmResult.not_found()
        return ConfirmResult(confirmed=True, method=self.methods[lane], block_height=None)
