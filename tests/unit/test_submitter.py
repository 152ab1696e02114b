"""Tests for nonce tracking and the serialized send path"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from flashrace.core.errors import NonceSyncError, RpcError
from flashrace.core.nonce_manager import NonceManager
from flashrace.core.sender import Lane
from flashrace.core.submitter import TransactionSubmitter

ADDRESS = "0x" + "ab" * 20


class RecordingSender:
    """send_with_nonce stand-in: records nonces, fails on scripted attempts."""

    def __init__(self, failures=None, delay=0.0):
        self.failures = list(failures or [])
        self.delay = delay
        self.nonces = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, nonce: int) -> str:
        self.nonces.append(nonce)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.failures:
                failure = self.failures.pop(0)
                if failure is not None:
                    raise failure
            return f"0x{nonce:064x}"
        finally:
            self.in_flight -= 1


def make_submitter(source_values, sender):
    source = AsyncMock(side_effect=list(source_values))
    nonces = NonceManager(ADDRESS, source)
    return TransactionSubmitter(ADDRESS, nonces, sender), nonces, source


class TestNonceManager:

    @pytest.mark.asyncio
    async def test_loads_once_then_advances(self):
        source = AsyncMock(return_value=3)
        manager = NonceManager(ADDRESS, source)

        assert await manager.get_next_nonce() == 3
        manager.advance(3)
        assert await manager.get_next_nonce() == 4
        source.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reset_rereads_source(self):
        manager = NonceManager(ADDRESS, AsyncMock(side_effect=[3, 9]))
        await manager.get_next_nonce()
        assert await manager.reset() == 9
        assert manager.next_nonce == 9


class TestSubmitter:

    @pytest.mark.asyncio
    async def test_consecutive_sends_use_consecutive_nonces(self):
        sender = RecordingSender()
        submitter, nonces, source = make_submitter([5], sender)

        handles = [await submitter.submit(Lane.FLASHBLOCKS) for _ in range(3)]

        assert sender.nonces == [5, 6, 7]
        assert handles[2].transaction_id == f"0x{7:064x}"
        assert handles[0].from_address == ADDRESS
        assert nonces.next_nonce == 8
        source.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nonce_error_resyncs_once(self):
        sender = RecordingSender(failures=[RpcError("nonce too low", code=-32000)])
        submitter, nonces, source = make_submitter([5, 9], sender)

        handle = await submitter.submit(Lane.NORMAL)

        assert sender.nonces == [5, 9]
        assert handle.transaction_id == f"0x{9:064x}"
        assert nonces.next_nonce == 10
        assert source.await_count == 2
        assert submitter.get_stats()["nonce_resyncs"] == 1

    @pytest.mark.asyncio
    async def test_second_nonce_error_is_nonce_sync_error(self):
        sender = RecordingSender(failures=[RpcError("already known"), RpcError("already known")])
        submitter, _, _ = make_submitter([5, 5], sender)

        with pytest.raises(NonceSyncError):
            await submitter.submit(Lane.FLASHBLOCKS)
        assert len(sender.nonces) == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        sender = RecordingSender(failures=[RpcError("insufficient funds for gas * price + value")])
        submitter, nonces, source = make_submitter([5], sender)

        with pytest.raises(RpcError, match="insufficient funds"):
            await submitter.submit(Lane.FLASHBLOCKS)

        assert sender.nonces == [5]
        assert nonces.next_nonce == 5
        source.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_submits_are_serialized_fifo(self):
        sender = RecordingSender(delay=0.01)
        submitter, _, _ = make_submitter([0], sender)

        lanes = [Lane.FLASHBLOCKS, Lane.NORMAL, Lane.FLASHBLOCKS, Lane.NORMAL]
        handles = await asyncio.gather(*(submitter.submit(lane) for lane in lanes))

        assert sender.max_in_flight == 1
        assert sender.nonces == [0, 1, 2, 3]
        assert [h.transaction_id for h in handles] == [f"0x{n:064x}" for n in range(4)]
        assert submitter.queue_depth == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_block_following_sends(self):
        sender = RecordingSender(failures=[RuntimeError("socket closed"), None])
        submitter, _, _ = make_submitter([1], sender)

        results = await asyncio.gather(
            submitter.submit(Lane.FLASHBLOCKS),
            submitter.submit(Lane.NORMAL),
            return_exceptions=True,
        )

        assert isinstance(results[0], RuntimeError)
        assert results[1].transaction_id == f"0x{1:064x}"
        assert submitter.get_stats()["failed"] == 1
        assert submitter.get_stats()["submitted"] == 1

    @pytest.mark.asyncio
    async def test_every_failure_kind_is_counted(self):
        sender = RecordingSender(failures=[
            RuntimeError("signer unavailable"),
            RpcError("insufficient funds for gas * price + value"),
        ])
        submitter, _, _ = make_submitter([0], sender)

        with pytest.raises(RuntimeError):
            await submitter.submit(Lane.NORMAL)
        with pytest.raises(RpcError):
            await submitter.submit(Lane.NORMAL)

        assert submitter.get_stats()["failed"] == 2
