"""
Error classification: connect and exec phases
"""
import errno
import socket

import paramiko
import pytest
from paramiko.ssh_exception import IncompatiblePeer, NoValidConnectionsError

from remotepool.core.exceptions import ConfigError, ConnectionError, RemoteError, TransferError
from remotepool.domain.classify import (
    ErrorCategory,
    classify,
    classify_connect,
    classify_exception,
    describe,
)
from remotepool.domain.classify.classifier import WAIT_CONTINUE


def _refused():
    return NoValidConnectionsError(
        {("127.0.0.1", 22): ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")}
    )


@pytest.mark.parametrize(
    "exc, reason",
    [
        (paramiko.PasswordRequiredException("private key file is encrypted"), "invalid passphrase"),
        (paramiko.AuthenticationException("Authentication failed."), "authentication failure"),
        (paramiko.BadAuthenticationType("Bad authentication type", ["publickey"]), "authentication failure"),
        (socket.gaierror(socket.EAI_NONAME, "Name or service not known"), "name resolution failure"),
        (OverflowError("getsockaddrarg: port must be 0-65535."), "illegal port number"),
        (ConfigError("Failed to load private key", reason="invalid private key"), "invalid private key"),
        (paramiko.SSHException("Invalid username"), "invalid username"),
        (IncompatiblePeer("Incompatible ssh peer (no acceptable kex algorithm)"), "invalid cipher algorithm"),
        (
            IncompatiblePeer("Incompatible ssh peer (no acceptable compression)"),
            "invalid compression algorithm",
        ),
    ],
)
def test_connect_fatal(exc, reason):
    result = classify_connect(describe(exc))
    assert result.category is ErrorCategory.CONNECT_FATAL
    assert result.reason == reason
    assert result.is_fatal


@pytest.mark.parametrize(
    "exc, reason",
    [
        (_refused(), "connection refused"),
        (ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused"), "connection refused"),
        (socket.timeout("timed out"), "timeout occurred during connection process"),
        (paramiko.SSHException("Error reading SSH protocol banner"), "Error reading SSH protocol banner"),
    ],
)
def test_connect_transient(exc, reason):
    result = classify_connect(describe(exc))
    assert result.category is ErrorCategory.CONNECT_TRANSIENT
    assert result.reason == reason
    assert not result.is_fatal


@pytest.mark.parametrize(
    "exc",
    [
        paramiko.ChannelException(2, "Connect failed"),
        paramiko.SSHException("(SSH) Channel open failure: open failed"),
        RuntimeError(WAIT_CONTINUE),
    ],
)
def test_exec_transient_busy(exc):
    result = classify(describe(exc))
    assert result.category is ErrorCategory.EXEC_TRANSIENT_BUSY


@pytest.mark.parametrize(
    "exc",
    [
        paramiko.SSHException("SSH session not active"),
        paramiko.SSHException("No existing session"),
        paramiko.SSHException("Not connected"),
        paramiko.SSHException("Channel is not open"),
        paramiko.SSHException("No response from server"),
        paramiko.SSHException("Server connection dropped: "),
        EOFError(),
        ConnectionResetError(errno.ECONNRESET, "Connection reset by peer"),
        BrokenPipeError(errno.EPIPE, "Broken pipe"),
        socket.timeout(),
        OSError(errno.ETIMEDOUT, "Connection timed out"),
    ],
)
def test_needs_reconnect(exc):
    assert classify(describe(exc)).category is ErrorCategory.NEEDS_RECONNECT


@pytest.mark.parametrize(
    "exc, reason, code",
    [
        (IOError(errno.ENOENT, "No such file"), "no such file", "ENOENT"),
        (PermissionError(errno.EACCES, "Permission denied"), "permission denied", "EACCES"),
        (FileExistsError(errno.EEXIST, "File exists"), "already exists", "EEXIST"),
        (OSError(errno.ENOSPC, "No space left on device"), "no space left on device", "ENOSPC"),
        (OSError(errno.ENOTDIR, "Not a directory"), "not a directory", "ENOTDIR"),
        (IOError("No such file"), "no such file", None),
        (TransferError("src must be file"), "src must be file", None),
        (TransferError("destination path must not be existing file"),
         "destination path must not be existing file", None),
    ],
)
def test_exec_fatal(exc, reason, code):
    info = describe(exc)
    result = classify(info)
    assert result.category is ErrorCategory.EXEC_FATAL
    assert result.reason == reason
    assert info.code == code


def test_unknown_error_is_fatal_with_message_as_reason():
    result = classify_exception(ValueError("something odd"))
    assert result.category is ErrorCategory.EXEC_FATAL
    assert result.reason == "something odd"


def test_preset_category_is_kept():
    error = ConnectionError("boom", reason="authentication failure", category="connect-fatal")
    result = classify(describe(error))
    assert result.category is ErrorCategory.CONNECT_FATAL
    assert result.reason == "authentication failure"


def test_describe_remote_error_carries_fields():
    info = describe(RemoteError("failed", reason="why", code="EIO"))
    assert info.kind == "RemoteError"
    assert info.reason == "why"
    assert info.code == "EIO"


def test_classify_exception_connect_phase():
    result = classify_exception(_refused(), connecting=True)
    assert result.category is ErrorCategory.CONNECT_TRANSIENT
