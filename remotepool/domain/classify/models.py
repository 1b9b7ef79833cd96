"""
Error classification models
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """What the failure means for the connection and for the order"""
    CONNECT_FATAL = "connect-fatal"
    CONNECT_TRANSIENT = "connect-transient"
    EXEC_FATAL = "exec-fatal"
    EXEC_TRANSIENT_BUSY = "exec-transient-busy"
    NEEDS_RECONNECT = "needs-reconnect"


@dataclass(frozen=True)
class ErrorInfo:
    """Structured view of a raised error, built once where it is caught"""
    kind: str                    # exception class name
    message: str
    code: Optional[str] = None   # symbolic errno ("ENOENT") or channel code
    level: Optional[str] = None  # origin hint, e.g. "client-authentication"
    category: Optional[str] = None  # preset by RemoteError instances
    reason: Optional[str] = None    # preset by RemoteError instances


@dataclass(frozen=True)
class Classification:
    category: ErrorCategory
    reason: str

    @property
    def is_fatal(self) -> bool:
        return self.category in (ErrorCategory.CONNECT_FATAL, ErrorCategory.EXEC_FATAL)
