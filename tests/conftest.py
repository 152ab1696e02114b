"""
Pytest fixtures for flashrace tests
"""
import asyncio
from typing import Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import pytest

from flashrace.core.sender import LANES, ConfirmationMethod, ConfirmResult, Lane, TransactionHandle

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

SendError = Union[BaseException, Callable[[Lane, int], Optional[BaseException]], None]


class ScriptedProvider:
    """In-memory TransactionProvider with scripted failures and call counters."""

    spoof_mode = True

    def __init__(
        self,
        confirm_after: int = 1,
        send_error: SendError = None,
        send_delay: float = 0.0,
        confirm_delay: float = 0.0,
        confirm_failures: int = 0,
    ):
        self.confirm_after = confirm_after
        self.send_error = send_error
        self.send_delay = send_delay
        self.confirm_delay = confirm_delay
        self.confirm_failures = confirm_failures
        self.sends: Dict[Lane, int] = {lane: 0 for lane in LANES}
        self.confirms: Dict[Lane, int] = {lane: 0 for lane in LANES}
        self.closed = False
        self._polls: Dict[str, int] = {}

    async def send(self, lane: Lane) -> TransactionHandle:
        self.sends[lane] += 1
        attempt = self.sends[lane]
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        else:
            await asyncio.sleep(0)

        error = self.send_error
        if error is not None and not isinstance(error, BaseException):
            error = error(lane, attempt)
        if error is not None:
            raise error

        code = "f1" if lane == Lane.FLASHBLOCKS else "f2"
        return TransactionHandle(transaction_id=f"0x{code}{attempt:062x}", from_address="0x" + "ab" * 20)

    async def confirm(self, lane: Lane, transaction_id: str) -> ConfirmResult:
        self.confirms[lane] += 1
        if self.confirm_delay:
            await asyncio.sleep(self.confirm_delay)
        if self.confirm_failures > 0:
            self.confirm_failures -= 1
            raise ConnectionError("node unreachable")

        polls = self._polls.get(transaction_id, 0) + 1
        self._polls[transaction_id] = polls
        if polls < self.confirm_after:
            return ConfirmResult.not_found()
        method = ConfirmationMethod.PENDING if lane == Lane.FLASHBLOCKS else ConfirmationMethod.LATEST
        return ConfirmResult(confirmed=True, method=method, block_height=100)

    async def wallet_snapshot(self) -> dict:
        return {
            "address": None,
            "balanceWei": None,
            "balanceEth": None,
            "spoofMode": True,
            "available": False,
        }

    async def close(self) -> None:
        self.closed = True


class EventRecorder:
    """Controller listener that keeps every event."""

    def __init__(self):
        self.events: List = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List:
        return [event for event in self.events if event.type == event_type]

    def lane_events(self, lane: Lane, kind: str) -> List:
        return [
            event for event in self.of_type("lane")
            if event.payload["lane"] == lane.value and event.payload["kind"] == kind
        ]


@pytest.fixture
def scripted_provider():
    return ScriptedProvider(send_delay=0.001)


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def mock_rpc_client():
    """Mock JSON-RPC client for a funded demo signer"""
    client = MagicMock()
    client.get_transaction_count = AsyncMock(return_value=7)
    client.gas_price = AsyncMock(return_value=1_000_000)
    client.get_balance = AsyncMock(return_value=1_500_000_000_000_000_000)
    client.send_raw_transaction = AsyncMock(side_effect=lambda raw: "0x" + "cd" * 32)
    client.get_block = AsyncMock(return_value=None)
    client.get_transaction_receipt = AsyncMock(return_value=None)
    client.close = AsyncMock()
    return client


@pytest.fixture
def test_account():
    from eth_account import Account
    return Account.from_key(TEST_PRIVATE_KEY)


class FakeClock:
    """Manually advanced epoch-milliseconds clock."""

    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def provider_factory():
    """ScriptedProvider constructor, for tests that need non-default scripts."""
    return ScriptedProvider
