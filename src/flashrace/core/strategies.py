"""
Confirmation strategies.

Each strategy pairs one chain query with a pure predicate over its result:

    pending  - eth_getBlockByNumber("pending", false), tx id in block.transactions
    latest   - eth_getBlockByNumber("latest", false), tx id in block.transactions
    receipt  - eth_getTransactionReceipt(tx id), receipt with non-null blockNumber

A null block or null receipt is "not yet found", returned as an unconfirmed
verdict. Only transport failures raise.
"""

from typing import Any, Dict, Optional, Protocol

from .errors import ConfigError
from .rpc_client import hex_to_int
from .sender import ConfirmationMethod, ConfirmResult, TransactionHandle


class ChainReader(Protocol):
    async def get_block(self, tag: str, full_transactions: bool = False) -> Optional[Dict[str, Any]]:
        ...

    async def get_transaction_receipt(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        ...


def evaluate_block(transaction_id: str, block: Optional[Dict[str, Any]], method: ConfirmationMethod) -> ConfirmResult:
    if not block:
        return ConfirmResult.not_found()
    wanted = transaction_id.lower()
    for candidate in block.get("transactions") or []:
        # full-body blocks carry dicts instead of hashes
        candidate_id = candidate.get("hash") if isinstance(candidate, dict) else candidate
        if isinstance(candidate_id, str) and candidate_id.lower() == wanted:
            return ConfirmResult(
                confirmed=True,
                method=method,
                block_height=hex_to_int(block.get("number")),
            )
    return ConfirmResult.not_found()


def evaluate_receipt(receipt: Optional[Dict[str, Any]]) -> ConfirmResult:
    if not receipt:
        return ConfirmResult.not_found()
    block_height = hex_to_int(receipt.get("blockNumber"))
    if block_height is None:
        return ConfirmResult.not_found()
    return ConfirmResult(confirmed=True, method=ConfirmationMethod.RECEIPT, block_height=block_height)


class BlockTagStrategy:
    """Scan the block behind a tag for the transaction id."""

    def __init__(self, tag: str):
        self.tag = tag
        self.method = ConfirmationMethod(tag)

    async def check(self, handle: TransactionHandle, chain: ChainReader) -> ConfirmResult:
        block = await chain.get_block(self.tag, False)
        return evaluate_block(handle.transaction_id, block, self.method)

    def __repr__(self) -> str:
        return f"BlockTagStrategy({self.tag!r})"


class ReceiptStrategy:
    method = ConfirmationMethod.RECEIPT

    async def check(self, handle: TransactionHandle, chain: ChainReader) -> ConfirmResult:
        receipt = await chain.get_transaction_receipt(handle.transaction_id)
        return evaluate_receipt(receipt)

    def __repr__(self) -> str:
        return "ReceiptStrategy()"


STRATEGY_NAMES = ("pending", "latest", "receipt")


def build_strategy(name: str):
    """Strategy for a configuration name: pending, latest or receipt."""
    normalized = (name or "").strip().lower()
    if normalized in ("pending", "latest"):
        return BlockTagStrategy(normalized)
    if normalized == "receipt":
        return ReceiptStrategy()
    raise ConfigError(f"Unknown confirmation strategy {name!r}; expected one of {', '.join(STRATEGY_NAMES)}")
