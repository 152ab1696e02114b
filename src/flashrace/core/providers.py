"""
TransactionProvider implementations, chosen once at startup.

    LiveProvider  - signs zero-value self-transfers with the demo signer and
                    confirms them with the lane's configured strategy
    SpoofProvider - SpoofEngine behind the same interface, no chain traffic

Both report the same wallet snapshot so the boundary looks identical in
either mode.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional

from eth_account.signers.local import LocalAccount
from eth_utils import from_wei

from ..config import Settings
from ..security.secrets_manager import SecretsManager, create_secrets_manager
from ..utils.logger import get_logger
from .errors import SignerConfigError
from .nonce_manager import NonceManager
from .rpc_client import RpcClient
from .sender import LANES, ConfirmResult, Lane, TransactionHandle
from .spoof import SpoofEngine
from .strategies import build_strategy
from .submitter import TransactionSubmitter

logger = get_logger(__name__)

SELF_TRANSFER_GAS = 21_000


def format_ether(wei: int) -> str:
    text = format(from_wei(wei, "ether"), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class WalletInspector:
    """Balance lookup for the demo signer, if one is configured."""

    def __init__(self, rpc: RpcClient, account: Optional[LocalAccount], spoof_mode: bool):
        self._rpc = rpc
        self.account = account
        self.spoof_mode = spoof_mode

    async def snapshot(self) -> Dict[str, Any]:
        if self.account is None:
            return {
                "address": None,
                "balanceWei": None,
                "balanceEth": None,
                "spoofMode": self.spoof_mode,
                "available": False,
            }
        balance_wei = await self._rpc.get_balance(self.account.address)
        return {
            "address": self.account.address,
            "balanceWei": str(balance_wei),
            "balanceEth": format_ether(balance_wei),
            "spoofMode": self.spoof_mode,
            "available": True,
        }

    async def close(self) -> None:
        await self._rpc.close()


class LiveProvider:
    spoof_mode = False

    def __init__(
        self,
        rpc: RpcClient,
        strategies: Mapping[Lane, Any],
        chain_id: int,
        account: Optional[LocalAccount] = None,
        signer_error: Optional[str] = None,
    ):
        self._rpc = rpc
        self._strategies = dict(strategies)
        self._chain_id = chain_id
        self._account = account
        self._signer_error = signer_error
        self._wallet = WalletInspector(rpc, account, spoof_mode=False)
        self._submitter: Optional[TransactionSubmitter] = None

        if account is not None:
            self.nonce_manager = NonceManager(
                account.address,
                lambda: rpc.get_transaction_count(account.address, "pending"),
            )
            self._submitter = TransactionSubmitter(account.address, self.nonce_manager, self._sign_and_send)

    @property
    def submitter(self) -> Optional[TransactionSubmitter]:
        return self._submitter

    async def _sign_and_send(self, nonce: int) -> str:
        gas_price = await self._rpc.gas_price()
        transaction = {
            "to": self._account.address,
            "value": 0,
            "gas": SELF_TRANSFER_GAS,
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": self._chain_id,
        }
        signed = self._account.sign_transaction(transaction)
        return await self._rpc.send_raw_transaction("0x" + bytes(signed.raw_transaction).hex())

    async def send(self, lane: Lane) -> TransactionHandle:
        if self._submitter is None:
            raise SignerConfigError(self._signer_error or "Missing required env var: DEMO_PRIVATE_KEY")
        return await self._submitter.submit(lane)

    async def confirm(self, lane: Lane, transaction_id: str) -> ConfirmResult:
        from_address = self._account.address if self._account else ""
        handle = TransactionHandle(transaction_id=transaction_id, from_address=from_address)
        return await self._strategies[lane].check(handle, self._rpc)

    async def wallet_snapshot(self) -> Dict[str, Any]:
        return await self._wallet.snapshot()

    async def close(self) -> None:
        await self._rpc.close()


class SpoofProvider:
    spoof_mode = True

    def __init__(self, engine: SpoofEngine, wallet: WalletInspector):
        self.engine = engine
        self._wallet = wallet

    async def send(self, lane: Lane) -> TransactionHandle:
        # still a suspension point, like a real send
        await asyncio.sleep(0)
        return self.engine.submit(lane)

    async def confirm(self, lane: Lane, transaction_id: str) -> ConfirmResult:
        return self.engine.confirm(lane, transaction_id)

    async def wallet_snapshot(self) -> Dict[str, Any]:
        return await self._wallet.snapshot()

    async def close(self) -> None:
        await self._wallet.close()


def _load_account(secrets: SecretsManager):
    try:
        return secrets.get_account(), None
    except SignerConfigError as e:
        logger.warning(f"[Provider] Demo signer unavailable: {e}")
        return None, str(e)


def build_provider(settings: Settings, secrets: Optional[SecretsManager] = None):
    """Select the provider for the process from settings."""
    secrets = secrets or create_secrets_manager(settings.secrets_file or None)
    rpc = RpcClient(settings.rpc_http, jwt_secret=settings.rpc_jwt_secret)
    account, signer_error = _load_account(secrets)
    strategies = {
        Lane.FLASHBLOCKS: build_strategy(settings.flashblocks_strategy),
        Lane.NORMAL: build_strategy(settings.normal_strategy),
    }

    if settings.spoof_mode:
        engine = SpoofEngine(methods={lane: strategies[lane].method for lane in LANES})
        logger.info("[Provider] Spoof mode: synthetic transactions, no chain sends")
        return SpoofProvider(engine, WalletInspector(rpc, account, spoof_mode=True))

    logger.info(
        f"[Provider] Live mode on {settings.rpc_http} "
        f"(flashblocks={strategies[Lane.FLASHBLOCKS]!r}, normal={strategies[Lane.NORMAL]!r})"
    )
    return LiveProvider(rpc, strategies, settings.chain_id, account=account, signer_error=signer_error)
