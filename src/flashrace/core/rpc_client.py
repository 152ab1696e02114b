"""
Async JSON-RPC client for the chain node.

One shared aiohttp session per client. When a JWT secret is configured every
request carries a freshly signed HS256 bearer token (the node only checks
`iat`).

Usage:
    rpc = RpcClient("https://worldchain.worldcoin.org")
    block = await rpc.get_block("pending")
    await rpc.close()
"""

import asyncio
import base64
import hashlib
import hmac
import itertools
import json
import time
from typing import Any, Dict, List, Optional

import aiohttp

from ..utils.logger import get_logger
from .errors import RpcError

logger = get_logger(__name__)


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def jwt_secret_bytes(secret: str) -> bytes:
    """Hex secret (0x optional) -> HMAC key. Raises ValueError on non-hex input."""
    return bytes.fromhex(secret[2:] if secret.startswith("0x") else secret)


def sign_jwt(secret: str, issued_at: Optional[int] = None) -> str:
    """Build an HS256 JWT with only an `iat` claim. Secret is hex."""
    header = _base64url(json.dumps({"alg": "HS256", "typ": "JWT"}, separators=(",", ":")).encode())
    payload = _base64url(
        json.dumps(
            {"iat": int(time.time()) if issued_at is None else issued_at},
            separators=(",", ":"),
        ).encode()
    )
    key = jwt_secret_bytes(secret)
    signature = hmac.new(key, f"{header}.{payload}".encode(), hashlib.sha256).digest()
    return f"{header}.{payload}.{_base64url(signature)}"


def hex_to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    return int(value, 16)


class RpcClient:
    """Thin JSON-RPC transport plus the handful of eth_* calls the race needs."""

    DEFAULT_TIMEOUT = 10.0

    def __init__(self, endpoint: str, jwt_secret: str = "", timeout: float = DEFAULT_TIMEOUT):
        self.endpoint = endpoint
        self._jwt_secret = jwt_secret
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)
        self._stats = {"requests": 0, "errors": 0}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                connector=aiohttp.TCPConnector(limit=20),
            )
        return self._session

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._jwt_secret:
            headers["Authorization"] = f"Bearer {sign_jwt(self._jwt_secret)}"
        return headers

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Send one JSON-RPC call and return its `result`.

        Raises:
            RpcError: on transport failure, non-JSON reply or a JSON-RPC error object
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        session = await self._get_session()
        self._stats["requests"] += 1

        try:
            async with session.post(self.endpoint, json=payload, headers=self._headers()) as response:
                text = await response.text()
                status = response.status
        except asyncio.TimeoutError as e:
            self._stats["errors"] += 1
            raise RpcError(f"{method} timed out after {self._timeout}s") from e
        except aiohttp.ClientError as e:
            self._stats["errors"] += 1
            raise RpcError(f"{method} transport error: {e}") from e

        try:
            body = json.loads(text)
        except ValueError:
            self._stats["errors"] += 1
            raise RpcError(f"{method} returned HTTP {status}: {text[:200]}")

        if not isinstance(body, dict):
            self._stats["errors"] += 1
            raise RpcError(f"{method} returned malformed reply")

        error = body.get("error")
        if error:
            self._stats["errors"] += 1
            if not isinstance(error, dict):
                raise RpcError(str(error))
            raise RpcError(
                error.get("message", "Unknown RPC error"),
                code=error.get("code"),
                data=error.get("data"),
            )
        if status != 200:
            self._stats["errors"] += 1
            raise RpcError(f"{method} returned HTTP {status}")

        return body.get("result")

    async def get_block(self, tag: str, full_transactions: bool = False) -> Optional[Dict[str, Any]]:
        return await self.request("eth_getBlockByNumber", [tag, full_transactions])

    async def get_transaction_receipt(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        return await self.request("eth_getTransactionReceipt", [transaction_id])

    async def get_balance(self, address: str, tag: str = "latest") -> int:
        return hex_to_int(await self.request("eth_getBalance", [address, tag]))

    async def get_transaction_count(self, address: str, tag: str = "pending") -> int:
        return hex_to_int(await self.request("eth_getTransactionCount", [address, tag]))

    async def gas_price(self) -> int:
        return hex_to_int(await self.request("eth_gasPrice"))

    async def send_raw_transaction(self, raw_transaction: str) -> str:
        return await self.request("eth_sendRawTransaction", [raw_transaction])

    def get_stats(self) -> dict:
        return {**self._stats, "endpoint": self.endpoint}

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
