"""
Nonce tracking for the shared demo signer.

Not safe for concurrent use on its own - callers serialize access through
TransactionSubmitter's send barrier.
"""

from typing import Awaitable, Callable, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)

NonceSource = Callable[[], Awaitable[int]]


class NonceManager:
    """Local next-nonce counter backed by an authoritative source.

    The source is normally `eth_getTransactionCount(address, "pending")`.
    """

    def __init__(self, address: str, source: NonceSource):
        self.address = address
        self._source = source
        self._next: Optional[int] = None
        self._stats = {"source_reads": 0, "resets": 0, "advanced": 0}

    @property
    def next_nonce(self) -> Optional[int]:
        return self._next

    async def get_next_nonce(self) -> int:
        """Next nonce to sign with. Reads the source on first use."""
        if self._next is None:
            await self._load()
        return self._next

    def advance(self, used_nonce: int) -> None:
        """Record a successful send with `used_nonce`."""
        self._next = used_nonce + 1
        self._stats["advanced"] += 1

    async def reset(self) -> int:
        """Drop the local counter and re-read it from the source."""
        stale = self._next
        self._stats["resets"] += 1
        await self._load()
        logger.warning(f"[Nonce] Resynced {self.address[:10]}...: {stale} -> {self._next}")
        return self._next

    async def _load(self) -> None:
        self._next = await self._source()
        self._stats["source_reads"] += 1

    def get_stats(self) -> dict:
        return {**self._stats, "next_nonce": self._next}
