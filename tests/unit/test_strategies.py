"""Unit tests for confirmation strategies"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from flashrace.core.errors import ConfigError
from flashrace.core.sender import ConfirmationMethod, TransactionHandle
from flashrace.core.strategies import (
    BlockTagStrategy,
    ReceiptStrategy,
    build_strategy,
    evaluate_block,
    evaluate_receipt,
)

TX = "0x" + "ab" * 32


class TestEvaluateBlock:

    def test_hash_present_case_insensitive(self):
        block = {"number": "0x1a", "transactions": ["0x" + "11" * 32, TX.upper().replace("0X", "0x")]}
        result = evaluate_block(TX, block, ConfirmationMethod.PENDING)
        assert result.confirmed is True
        assert result.method == ConfirmationMethod.PENDING
        assert result.block_height == 26

    def test_full_transaction_bodies(self):
        block = {"number": "0x2", "transactions": [{"hash": TX}]}
        assert evaluate_block(TX, block, ConfirmationMethod.LATEST).confirmed is True

    def test_hash_absent(self):
        result = evaluate_block(TX, {"number": "0x1", "transactions": []}, ConfirmationMethod.LATEST)
        assert result.confirmed is False
        assert result.method == ConfirmationMethod.NONE

    def test_null_block_is_not_found(self):
        result = evaluate_block(TX, None, ConfirmationMethod.PENDING)
        assert result.confirmed is False
        assert result.block_height is None

    def test_pending_block_without_number(self):
        result = evaluate_block(TX, {"number": None, "transactions": [TX]}, ConfirmationMethod.PENDING)
        assert result.confirmed is True
        assert result.block_height is None


class TestEvaluateReceipt:

    def test_mined_receipt(self):
        result = evaluate_receipt({"transactionHash": TX, "blockNumber": "0x10"})
        assert result.confirmed is True
        assert result.method == ConfirmationMethod.RECEIPT
        assert result.block_height == 16

    def test_null_receipt(self):
        assert evaluate_receipt(None).confirmed is False

    def test_receipt_without_block_number(self):
        assert evaluate_receipt({"transactionHash": TX, "blockNumber": None}).confirmed is False


class TestStrategyCheck:

    @pytest.mark.asyncio
    async def test_block_tag_queries_tag(self):
        chain = MagicMock()
        chain.get_block = AsyncMock(return_value={"number": "0x5", "transactions": [TX]})
        strategy = BlockTagStrategy("pending")

        result = await strategy.check(TransactionHandle(TX, "0xfrom"), chain)

        chain.get_block.assert_awaited_once_with("pending", False)
        assert result.confirmed is True
        assert result.method == ConfirmationMethod.PENDING

    @pytest.mark.asyncio
    async def test_receipt_strategy_not_found(self):
        chain = MagicMock()
        chain.get_transaction_receipt = AsyncMock(return_value=None)

        result = await ReceiptStrategy().check(TransactionHandle(TX, "0xfrom"), chain)

        chain.get_transaction_receipt.assert_awaited_once_with(TX)
        assert result.confirmed is False

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        chain = MagicMock()
        chain.get_block = AsyncMock(side_effect=ConnectionError("down"))
        with pytest.raises(ConnectionError):
            await BlockTagStrategy("latest").check(TransactionHandle(TX, "0xfrom"), chain)


class TestBuildStrategy:

    @pytest.mark.parametrize("name,method", [
        ("pending", ConfirmationMethod.PENDING),
        ("latest", ConfirmationMethod.LATEST),
        ("RECEIPT", ConfirmationMethod.RECEIPT),
    ])
    def test_known_names(self, name, method):
        assert build_strategy(name).method == method

    def test_unknown_name(self):
        with pytest.raises(ConfigError):
            build_strategy("finalized")
