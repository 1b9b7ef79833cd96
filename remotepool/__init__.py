"""
remotepool - resilient remote command execution and file transfer

Many concurrent requests share a small, bounded pool of SSH sessions:
- commands with streamed stdout / stderr
- single file and recursive directory transfer with include / exclude globs
- mkdir -p, ls, realpath, rm, chmod, chown on the remote host
- transient channel and connection failures are retried transparently
"""

__version__ = "0.1.0"

from .client import RemoteClient
from .core import (
    ClientConfig,
    QueueSink,
    TailBuffer,
    Telemetry,
    setup_logging,
)
from .core.exceptions import (
    RemoteError,
    ConfigError,
    ConnectionError,
    SessionLostError,
    CommandError,
    TransferError,
)
from .domain.classify import ErrorCategory, classify, classify_connect, describe
from .domain.pool import ConnectionPool, PoolConfig
from .domain.scheduler import Order, OrderKind, Scheduler
from .domain.transfer import TransferEngine

__all__ = [
    # Version
    "__version__",
    # Client
    "RemoteClient",
    "ClientConfig",
    "PoolConfig",
    # Output
    "QueueSink",
    "TailBuffer",
    "Telemetry",
    "setup_logging",
    # Errors
    "RemoteError",
    "ConfigError",
    "ConnectionError",
    "SessionLostError",
    "CommandError",
    "TransferError",
    "ErrorCategory",
    "classify",
    "classify_connect",
    "describe",
    # Building blocks
    "ConnectionPool",
    "Order",
    "OrderKind",
    "Scheduler",
    "TransferEngine",
]
