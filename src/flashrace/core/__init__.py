"""Chain access, signing path and confirmation strategies.

Providers live in core.providers and are not re-exported here (they depend on config).
"""

from .errors import (
    ConfigError,
    NonceSyncError,
    OperationAborted,
    RaceError,
    RpcError,
    SignerConfigError,
)
from .sender import (
    LANES,
    ConfirmationMethod,
    ConfirmResult,
    Lane,
    TransactionHandle,
    TransactionProvider,
)
from .strategies import BlockTagStrategy, ReceiptStrategy, build_strategy

__all__ = [
    # Errors
    "ConfigError",
    "NonceSyncError",
    "OperationAborted",
    "RaceError",
    "RpcError",
    "SignerConfigError",
    # Sender types
    "LANES",
    "ConfirmationMethod",
    "ConfirmResult",
    "Lane",
    "TransactionHandle",
    "TransactionProvider",
    # Strategies
    "BlockTagStrategy",
    "ReceiptStrategy",
    "build_strategy",
]
