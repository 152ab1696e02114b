"""
Runtime configuration from environment variables (.env supported).

The signer key is not part of Settings. It is resolved through
security.secrets_manager and never reaches the HTTP boundary.
"""

import os
from dataclasses import asdict, dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .core.errors import ConfigError
from .core.rpc_client import jwt_secret_bytes
from .core.strategies import STRATEGY_NAMES

DEFAULT_RPC_HTTP = "https://worldchain.worldcoin.org"
WORLDCHAIN_CHAIN_ID = 480

MIN_DURATION_SECONDS = 1
MAX_DURATION_SECONDS = 60


@dataclass(frozen=True)
class Settings:
    rpc_http: str = DEFAULT_RPC_HTTP
    rpc_jwt_secret: str = ""
    chain_id: int = WORLDCHAIN_CHAIN_ID
    spoof_mode: bool = False
    flashblocks_strategy: str = "pending"
    normal_strategy: str = "latest"
    confirm_poll_ms: int = 90
    send_retry_ms: int = 40
    server_host: str = "0.0.0.0"
    server_port: int = 3000
    log_level: str = "INFO"
    log_dir: str = "logs"
    secrets_file: str = ""

    def to_public_dict(self) -> dict:
        data = asdict(self)
        data["rpc_jwt_secret"] = "***" if self.rpc_jwt_secret else ""
        return data


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("true", "1", "yes")


def _parse_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_jwt_secret(env: Mapping[str, str]) -> str:
    value = (env.get("WORLDCHAIN_RPC_JWT") or "").strip()
    if value:
        try:
            jwt_secret_bytes(value)
        except ValueError:
            raise ConfigError("WORLDCHAIN_RPC_JWT must be a hex string")
    return value


def _parse_strategy(env: Mapping[str, str], name: str, default: str) -> str:
    value = (env.get(name) or default).strip().lower()
    if value not in STRATEGY_NAMES:
        raise ConfigError(f"{name} must be one of {', '.join(STRATEGY_NAMES)}, got {value!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from `env`, or from os.environ after loading .env."""
    if env is None:
        load_dotenv()
        env = os.environ

    return Settings(
        rpc_http=env.get("WORLDCHAIN_RPC_HTTP") or DEFAULT_RPC_HTTP,
        rpc_jwt_secret=_parse_jwt_secret(env),
        chain_id=_parse_int(env, "DEMO_CHAIN_ID", WORLDCHAIN_CHAIN_ID, minimum=1),
        spoof_mode=_parse_bool(env.get("DEMO_SPOOF_TRANSACTIONS")),
        flashblocks_strategy=_parse_strategy(env, "DEMO_FLASHBLOCKS_STRATEGY", "pending"),
        normal_strategy=_parse_strategy(env, "DEMO_NORMAL_STRATEGY", "latest"),
        confirm_poll_ms=_parse_int(env, "DEMO_CONFIRM_POLL_MS", 90, minimum=1),
        send_retry_ms=_parse_int(env, "DEMO_SEND_RETRY_MS", 40, minimum=1),
        server_host=env.get("DEMO_SERVER_HOST") or "0.0.0.0",
        server_port=_parse_int(env, "DEMO_SERVER_PORT", 3000, minimum=1),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        log_dir=env.get("LOG_DIR") or "logs",
        secrets_file=env.get("DEMO_SECRETS_FILE") or "",
    )
