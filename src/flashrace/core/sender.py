"""
Transaction provider protocol - the single seam between the race engine and
the chain (live) or its offline stand-in (spoof).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol


class Lane(Enum):
    FLASHBLOCKS = "flashblocks"
    NORMAL = "normal"

    @classmethod
    def parse(cls, value: Any) -> Optional["Lane"]:
        """Return the lane for a boundary value, None if it is not one."""
        if isinstance(value, Lane):
            return value
        for lane in cls:
            if lane.value == value:
                return lane
        return None


LANES = (Lane.FLASHBLOCKS, Lane.NORMAL)


class ConfirmationMethod(Enum):
    PENDING = "pending"
    LATEST = "latest"
    RECEIPT = "receipt"
    NONE = "none"


@dataclass(frozen=True)
class TransactionHandle:
    """Result of one send. Consumed by exactly one confirm cycle."""
    transaction_id: str
    from_address: str

    def to_dict(self) -> Dict[str, str]:
        return {"txHash": self.transaction_id, "from": self.from_address}


@dataclass(frozen=True)
class ConfirmResult:
    """Verdict of one confirmation check."""
    confirmed: bool
    method: ConfirmationMethod = ConfirmationMethod.NONE
    block_height: Optional[int] = None

    @classmethod
    def not_found(cls) -> "ConfirmResult":
        return cls(confirmed=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confirmed": self.confirmed,
            "method": self.method.value,
            "blockNumber": self.block_height,
        }


class TransactionProvider(Protocol):
    """Capability used by lane loops and the HTTP boundary."""

    spoof_mode: bool

    async def send(self, lane: Lane) -> TransactionHandle:
        """Submit one zero-value self-transfer for the lane."""
        ...

    async def confirm(self, lane: Lane, transaction_id: str) -> ConfirmResult:
        """Check whether the lane's transaction is confirmed."""
        ...

    async def wallet_snapshot(self) -> Dict[str, Any]:
        """Informational signer snapshot."""
        ...

    async def close(self) -> None:
        ...
