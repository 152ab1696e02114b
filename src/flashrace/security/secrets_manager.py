"""
SecretsManager - signer credential lookup.

Providers are tried in registration order. The demo signer key is looked up
under DEMO_PRIVATE_KEY first, then under the two legacy per-lane names.
"""

import json
import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from eth_account import Account
from eth_account.signers.local import LocalAccount

from ..core.errors import SignerConfigError
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEMO_PRIVATE_KEY_ENV = "DEMO_PRIVATE_KEY"
LEGACY_FLASHBLOCKS_PRIVATE_KEY_ENV = "DEMO_FLASHBLOCKS_PRIVATE_KEY"
LEGACY_NORMAL_PRIVATE_KEY_ENV = "DEMO_NORMAL_PRIVATE_KEY"

PRIVATE_KEY_LOOKUP_ORDER = (
    DEMO_PRIVATE_KEY_ENV,
    LEGACY_FLASHBLOCKS_PRIVATE_KEY_ENV,
    LEGACY_NORMAL_PRIVATE_KEY_ENV,
)

_PRIVATE_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class SecretsProvider(Protocol):
    def get_secret(self, key: str) -> Optional[str]:
        ...

    def is_available(self) -> bool:
        ...


class EnvSecretsProvider:
    """Secrets from environment variables"""

    def __init__(self, prefix: str = "", environ: Optional[Dict[str, str]] = None):
        self.prefix = prefix
        self._environ = environ

    def get_secret(self, key: str) -> Optional[str]:
        full_key = f"{self.prefix}{key}" if self.prefix else key
        environ = os.environ if self._environ is None else self._environ
        return environ.get(full_key) or None

    def is_available(self) -> bool:
        return True


class FileSecretsProvider:
    """Secrets from a flat JSON object file"""

    def __init__(self, filepath: str):
        self.filepath = Path(filepath)
        self._secrets: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if not self.filepath.exists():
            logger.warning(f"Secrets file not found: {self.filepath}")
            return
        try:
            with open(self.filepath, "r") as f:
                self._secrets = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load secrets: {e}")

    def get_secret(self, key: str) -> Optional[str]:
        return self._secrets.get(key) or None

    def is_available(self) -> bool:
        return self.filepath.exists()


class SecretsManager:
    """
    Usage:
        manager = SecretsManager()
        manager.add_provider(EnvSecretsProvider())
        account = manager.get_account()
    """

    def __init__(self):
        self._providers: List[SecretsProvider] = []

    def add_provider(self, provider: SecretsProvider) -> None:
        if provider.is_available():
            self._providers.append(provider)
            logger.debug(f"Added secrets provider: {type(provider).__name__}")
        else:
            logger.warning(f"Provider unavailable: {type(provider).__name__}")

    def get_secret(self, key: str) -> Optional[str]:
        for provider in self._providers:
            value = provider.get_secret(key)
            if value is not None:
                return value
        return None

    def resolve_private_key(self) -> Tuple[str, str]:
        """Return (env name, normalized 0x key).

        Raises:
            SignerConfigError: key missing or not 32 bytes of hex
        """
        for name in PRIVATE_KEY_LOOKUP_ORDER:
            value = self.get_secret(name)
            if not value:
                continue
            value = value.strip()
            normalized = value if value.startswith("0x") else f"0x{value}"
            if not _PRIVATE_KEY_RE.match(normalized):
                raise SignerConfigError(f"Invalid private key format for {name}")
            return name, normalized
        raise SignerConfigError(f"Missing required env var: {DEMO_PRIVATE_KEY_ENV}")

    def get_account(self) -> LocalAccount:
        _, private_key = self.resolve_private_key()
        return Account.from_key(private_key)


def create_secrets_manager(secrets_file: Optional[str] = None) -> SecretsManager:
    """Env provider, optionally preceded by a JSON secrets file."""
    manager = SecretsManager()
    if secrets_file:
        manager.add_provider(FileSecretsProvider(os.path.expanduser(secrets_file)))
    manager.add_provider(EnvSecretsProvider())
    return manager
