"""
Unified exception definitions

Every error surfaced by the public API is a RemoteError. ``reason`` holds the
normalized string produced by the error classifier so callers can branch on
stable semantics instead of raw transport text.
"""
from typing import Optional


class RemoteError(Exception):
    """Base exception class"""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        category: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason or message
        self.category = category
        self.code = code


class ConfigError(RemoteError):
    """Configuration error"""
    pass


class ConnectionError(RemoteError):
    """Connection error"""
    pass


class SessionLostError(ConnectionError):
    """Session dropped and the order could not be replayed"""
    pass


class CommandError(RemoteError):
    """Remote command error"""
    pass


class TransferError(RemoteError):
    """Transfer error"""
    pass
