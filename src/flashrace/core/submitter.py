"""
Serialized transaction submission for the shared signer.

Both lanes send through one TransactionSubmitter. The send path is guarded by
an asyncio.Lock, whose waiters are woken in FIFO order, so exactly one send is
in flight at a time and nonces are used strictly in sequence.

Nonce desync recovery is an explicit two-attempt loop:
    attempt 1 fails with a nonce error -> resync nonce from the node -> attempt 2
    attempt 2 fails with a nonce error -> NonceSyncError
Any other failure is re-raised untouched on the attempt it happens.
"""

import asyncio
from typing import Awaitable, Callable

from ..utils.logger import get_logger
from .errors import NonceSyncError, RpcError, is_nonce_sync_error
from .nonce_manager import NonceManager
from .sender import Lane, TransactionHandle

logger = get_logger(__name__)

SendWithNonce = Callable[[int], Awaitable[str]]


class TransactionSubmitter:
    MAX_ATTEMPTS = 2

    def __init__(self, address: str, nonce_manager: NonceManager, send_with_nonce: SendWithNonce):
        """
        Args:
            address: Signer address, reported as the handle's from-address
            nonce_manager: Shared nonce state for the signer
            send_with_nonce: Signs and broadcasts a self-transfer with the given
                nonce, returns the transaction id
        """
        self.address = address
        self._nonces = nonce_manager
        self._send_with_nonce = send_with_nonce
        self._lock = asyncio.Lock()
        self._queued = 0
        self._stats = {"submitted": 0, "failed": 0, "nonce_resyncs": 0}

    @property
    def queue_depth(self) -> int:
        """Sends waiting behind the barrier, including the one in flight."""
        return self._queued

    async def submit(self, lane: Lane) -> TransactionHandle:
        self._queued += 1
        try:
            async with self._lock:
                return await self._submit_locked(lane)
        finally:
            self._queued -= 1

    async def _submit_locked(self, lane: Lane) -> TransactionHandle:
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            nonce = await self._nonces.get_next_nonce()
            try:
                transaction_id = await self._send_with_nonce(nonce)
            except RpcError as e:
                if not is_nonce_sync_error(e):
                    self._stats["failed"] += 1
                    raise
                if attempt == self.MAX_ATTEMPTS:
                    self._stats["failed"] += 1
                    raise NonceSyncError(
                        f"Nonce still out of sync after resync ({lane.value}): {e}"
                    ) from e
                logger.warning(f"[Submitter] {lane.value} nonce {nonce} rejected: {e}")
                self._stats["nonce_resyncs"] += 1
                await self._nonces.reset()
                continue
            except Exception:
                self._stats["failed"] += 1
                raise

            self._nonces.advance(nonce)
            self._stats["submitted"] += 1
            logger.debug(f"[Submitter] {lane.value} sent nonce={nonce} tx={transaction_id[:18]}...")
            return TransactionHandle(transaction_id=transaction_id, from_address=self.address)

        # unreachable: the loop either returns or raises
        raise NonceSyncError(f"Send loop exhausted for {lane.value}")

    def get_stats(self) -> dict:
        return {**self._stats, "queue_depth": self._queued, "nonce": self._nonces.get_stats()}
