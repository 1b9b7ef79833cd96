"""
Error classifier

The single place that looks at raw transport / filesystem error text. Errors
are first reduced to an ErrorInfo by ``describe`` and then mapped to a
Classification by ``classify_connect`` (errors raised while connecting) or
``classify`` (errors raised while running an order).
"""
import errno
import socket
from typing import Optional

import paramiko
from paramiko.ssh_exception import NoValidConnectionsError

from ...core.exceptions import RemoteError
from .models import Classification, ErrorCategory, ErrorInfo


# ============================================================
# Message tables
# ============================================================

WAIT_CONTINUE = "You should wait continue event before sending any more traffic"
CHANNEL_OPEN_FAILURE = "(SSH) Channel open failure"

_PASSPHRASE_MESSAGES = (
    "Encrypted private key detected, but no passphrase given",
    "private key file is encrypted",
)
_PRIVATE_KEY_PREFIXES = (
    "privateKey value does not contain a (valid) private key",
    "Cannot parse privateKey",
    "not a valid",
    "Invalid key",
    "Could not deserialize key data",
)
_CIPHER_PREFIXES = (
    "Unsupported key exchange algorithm:",
    "Unsupported cipher algorithm:",
    "Unsupported server host key algorithm:",
    "Unsupported HMAC algorithm:",
    "Incompatible ssh peer",
    "Incompatible ssh server",
)
_COMPRESSION_PREFIXES = (
    "Unsupported compression algorithm:",
)

_RECONNECT_MESSAGES = (
    "rcvd type 90",
    "No response from server",
    "Not connected",
    "Channel is not open",
    "SSH session not active",
    "No existing session",
    "Channel closed.",
)
_RECONNECT_PREFIXES = (
    "Server connection dropped",
    "Socket is closed",
)
_RECONNECT_KINDS = (
    "EOFError",
    "ConnectionResetError",
    "ConnectionAbortedError",
    "BrokenPipeError",
)
_RECONNECT_CODES = ("ECONNRESET", "ETIMEDOUT", "EPIPE", "ECONNABORTED")

_FATAL_REASONS = {
    "ENOENT": "no such file",
    "EACCES": "permission denied",
    "EPERM": "permission denied",
    "EEXIST": "already exists",
    "EISDIR": "is a directory",
    "ENOTDIR": "not a directory",
    "ENOSPC": "no space left on device",
    "EDQUOT": "disk quota exceeded",
    "EMFILE": "too many open files",
    "ENFILE": "too many open files",
    "EMLINK": "too many links",
    "ENOLINK": "link has been severed",
    "ENOMEM": "out of memory",
    "ENOEXEC": "exec format error",
    "ESTALE": "stale file handle",
}
_FATAL_MESSAGES = {
    "No such file": "no such file",
    "Permission denied": "permission denied",
    "src must be file": "src must be file",
    "src must be existing file or directory": "src must be existing file or directory",
    "destination path must not be existing file": "destination path must not be existing file",
}


# ============================================================
# ErrorInfo construction
# ============================================================

def _errno_name(number: Optional[int]) -> Optional[str]:
    if number is None:
        return None
    return errno.errorcode.get(number)


def describe(exc: BaseException) -> ErrorInfo:
    """
    Reduce an exception to the fields the classifier looks at.

    Args:
        exc: Exception raised by the transport, the filesystem or this package

    Returns:
        ErrorInfo for ``classify`` / ``classify_connect``
    """
    kind = type(exc).__name__
    message = str(exc)

    if isinstance(exc, RemoteError):
        return ErrorInfo(
            kind=kind,
            message=message,
            code=exc.code,
            category=exc.category,
            reason=exc.reason,
        )

    if isinstance(exc, paramiko.ChannelException):
        return ErrorInfo(
            kind=kind,
            message=exc.text or message,
            code=str(exc.code),
            level="channel-open",
        )

    if isinstance(exc, paramiko.AuthenticationException):
        return ErrorInfo(kind=kind, message=message, level="client-authentication")

    if isinstance(exc, socket.gaierror):
        return ErrorInfo(kind=kind, message=message, code="ENOTFOUND", level="client-dns")

    if isinstance(exc, NoValidConnectionsError):
        codes = {_errno_name(getattr(e, "errno", None)) for e in exc.errors.values()}
        code = "ECONNREFUSED" if "ECONNREFUSED" in codes else None
        return ErrorInfo(kind=kind, message=message, code=code, level="client-socket")

    if isinstance(exc, TimeoutError):
        return ErrorInfo(kind=kind, message=message, code="ETIMEDOUT", level="client-timeout")

    if isinstance(exc, OSError):
        # paramiko SFTP raises IOError(errno, "No such file")
        return ErrorInfo(
            kind=kind,
            message=exc.strerror or message,
            code=_errno_name(exc.errno),
        )

    return ErrorInfo(kind=kind, message=message)


# ============================================================
# Classification
# ============================================================

def classify_connect(info: ErrorInfo) -> Classification:
    """Classify an error raised while establishing a session"""
    message = info.message.strip()

    if info.category:
        return Classification(ErrorCategory(info.category), info.reason or message)

    if (
        info.kind in ("PasswordRequiredException", "InvalidAsn1Error")
        or message in _PASSPHRASE_MESSAGES
    ):
        return Classification(ErrorCategory.CONNECT_FATAL, "invalid passphrase")
    if info.kind in ("OverflowError", "RangeError") or "port must be 0-65535" in message:
        return Classification(ErrorCategory.CONNECT_FATAL, "illegal port number")
    if info.code == "ENOTFOUND" or info.level == "client-dns":
        return Classification(ErrorCategory.CONNECT_FATAL, "name resolution failure")
    if info.level == "client-authentication":
        return Classification(ErrorCategory.CONNECT_FATAL, "authentication failure")
    if message == "Invalid username":
        return Classification(ErrorCategory.CONNECT_FATAL, "invalid username")
    if info.kind == "ConfigError" or message.startswith(_PRIVATE_KEY_PREFIXES):
        return Classification(ErrorCategory.CONNECT_FATAL, info.reason or "invalid private key")
    if message.startswith(_COMPRESSION_PREFIXES) or (
        message.startswith(_CIPHER_PREFIXES) and "compression" in message
    ):
        return Classification(ErrorCategory.CONNECT_FATAL, "invalid compression algorithm")
    if info.kind == "IncompatiblePeer" or message.startswith(_CIPHER_PREFIXES):
        return Classification(ErrorCategory.CONNECT_FATAL, "invalid cipher algorithm")

    if info.code == "ECONNREFUSED":
        return Classification(ErrorCategory.CONNECT_TRANSIENT, "connection refused")
    if info.code == "ETIMEDOUT" or info.level == "client-timeout":
        return Classification(
            ErrorCategory.CONNECT_TRANSIENT, "timeout occurred during connection process"
        )
    return Classification(ErrorCategory.CONNECT_TRANSIENT, message or "connection failure")


def classify(info: ErrorInfo) -> Classification:
    """Classify an error raised while an order was running on a session"""
    message = info.message.strip()

    if info.category:
        return Classification(ErrorCategory(info.category), info.reason or message)

    if (
        info.level == "channel-open"
        or message.startswith(CHANNEL_OPEN_FAILURE)
        or message == WAIT_CONTINUE
    ):
        return Classification(ErrorCategory.EXEC_TRANSIENT_BUSY, "channel open failure")

    if (
        message in _RECONNECT_MESSAGES
        or message.startswith(_RECONNECT_PREFIXES)
        or info.kind in _RECONNECT_KINDS
        or info.code in _RECONNECT_CODES
        or info.level == "client-timeout"
    ):
        return Classification(ErrorCategory.NEEDS_RECONNECT, message or "connection lost")

    if info.code in _FATAL_REASONS:
        return Classification(ErrorCategory.EXEC_FATAL, _FATAL_REASONS[info.code])
    if message in _FATAL_MESSAGES:
        return Classification(ErrorCategory.EXEC_FATAL, _FATAL_MESSAGES[message])

    # Unknown failures are surfaced, never retried
    return Classification(ErrorCategory.EXEC_FATAL, info.reason or message or info.kind)


def classify_exception(exc: BaseException, connecting: bool = False) -> Classification:
    """describe + classify in one call"""
    info = describe(exc)
    return classify_connect(info) if connecting else classify(info)
