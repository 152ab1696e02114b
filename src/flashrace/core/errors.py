"""
Error types and send-failure classification.

RPC nodes report failures as free-form messages, so classification is done on
the lowercased message text the same way for every provider.
"""

from typing import Any, Optional


class RaceError(Exception):
    """Base class for flashrace errors."""


class ConfigError(RaceError):
    """Invalid configuration value."""


class SignerConfigError(RaceError):
    """Signer credential is missing or malformed."""


class RpcError(RaceError):
    """JSON-RPC error object or transport failure."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (code {self.code})"


class NonceSyncError(RaceError):
    """Nonce stayed out of sync after one resync-and-retry."""


class OperationAborted(RaceError):
    """In-flight network operation was aborted by a run stop."""


NONCE_SYNC_MARKERS = (
    "nonce provided for the transaction is lower",
    "nonce too low",
    "already known",
)

INSUFFICIENT_FUNDS_MARKERS = (
    "insufficient funds",
    "exceeds the balance of the account",
    "gas * price + value",
)


def error_message(error: BaseException) -> str:
    message = str(error)
    return message if message else "Unexpected request failure"


def is_nonce_sync_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in NONCE_SYNC_MARKERS)


def is_insufficient_funds_error(error) -> bool:
    """Accepts an exception or an already extracted message."""
    message = str(error).lower()
    return any(marker in message for marker in INSUFFICIENT_FUNDS_MARKERS)
