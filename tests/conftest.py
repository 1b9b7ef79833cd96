"""
Shared pytest fixtures for the remotepool test suite.

The fake host keeps its "remote" filesystem in a temporary directory and
raises the same errno-carrying OSErrors paramiko's SFTP client raises.
"""
import errno
import os
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

import paramiko
import pytest

from remotepool.client import RemoteClient
from remotepool.core.interfaces import DataChannel, OutputSink, Session, SessionFactory


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------

class FakeDataChannel(DataChannel):
    """DataChannel over a local directory standing in for the remote root"""

    def __init__(self, root: Path, mkdir_log: Optional[List[str]] = None):
        self.root = root
        self.mkdir_log = mkdir_log if mkdir_log is not None else []
        self.closed = False

    def _local(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def stat(self, path):
        return os.stat(self._local(path))

    def lstat(self, path):
        return os.lstat(self._local(path))

    def readdir(self, path):
        return os.listdir(self._local(path))

    def mkdir(self, path):
        os.mkdir(self._local(path))
        self.mkdir_log.append(path)

    def rmdir(self, path):
        os.rmdir(self._local(path))

    def unlink(self, path):
        os.unlink(self._local(path))

    def realpath(self, path):
        local = self._local(path)
        if not local.exists():
            raise FileNotFoundError(errno.ENOENT, "No such file", path)
        rel = local.resolve().relative_to(self.root.resolve()).as_posix()
        return "/" if rel == "." else "/" + rel

    def chmod(self, path, mode):
        os.chmod(self._local(path), mode)

    def chown(self, path, uid, gid):
        pass

    def stream_get(self, path):
        return open(self._local(path), "rb")

    def stream_put(self, path):
        return open(self._local(path), "wb")

    def close(self):
        self.closed = True


# Command script: receives the stdout / stderr sinks, returns the exit status
Script = Callable[[Optional[OutputSink], Optional[OutputSink]], int]


class FakeSession(Session):
    def __init__(self, host: "FakeHost"):
        self.host = host
        self.connected = False
        self.closed = False

    def connect(self):
        self.host.on_connect()
        self.connected = True

    def is_connected(self):
        return self.connected

    def exec(self, cmd, options=None, stdout=None, stderr=None):
        if not self.connected:
            raise paramiko.SSHException("Not connected")
        return self.host.run(cmd, stdout, stderr)

    def open_data_channel(self):
        if not self.connected:
            raise paramiko.SSHException("Not connected")
        self.host.on_open_channel()
        return FakeDataChannel(self.host.root, self.host.mkdir_log)

    def close(self):
        self.connected = False
        self.closed = True


class FakeHost(SessionFactory):
    """Session factory; queued errors are raised by the next matching call"""

    def __init__(self, root: Path):
        self.root = root
        self.sessions: List[FakeSession] = []
        self.connect_errors: List[BaseException] = []
        self.exec_errors: List[BaseException] = []
        self.channel_errors: List[BaseException] = []
        self.commands: Dict[str, Script] = {}
        self.exec_log: List[str] = []
        self.mkdir_log: List[str] = []
        self.connect_calls = 0
        self._lock = threading.Lock()

    def create(self):
        session = FakeSession(self)
        with self._lock:
            self.sessions.append(session)
        return session

    def _pop(self, errors: List[BaseException]) -> Optional[BaseException]:
        with self._lock:
            return errors.pop(0) if errors else None

    def on_connect(self):
        with self._lock:
            self.connect_calls += 1
        error = self._pop(self.connect_errors)
        if error is not None:
            raise error

    def on_open_channel(self):
        error = self._pop(self.channel_errors)
        if error is not None:
            raise error

    def run(self, cmd, stdout, stderr):
        with self._lock:
            self.exec_log.append(cmd)
        error = self._pop(self.exec_errors)
        if error is not None:
            raise error
        script = self.commands.get(cmd)
        if script is not None:
            return script(stdout, stderr)
        if cmd.startswith("echo "):
            if stdout:
                stdout(cmd[len("echo "):] + "\n")
            return 0
        return 0


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def remote_root(tmp_path):
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def local_dir(tmp_path):
    local = tmp_path / "local"
    local.mkdir()
    return local


@pytest.fixture
def host(remote_root):
    return FakeHost(remote_root)


@pytest.fixture
def channel(remote_root):
    return FakeDataChannel(remote_root)


@pytest.fixture
def client_factory(host):
    """Build RemoteClients on the fake host; all are closed at teardown"""
    clients: List[RemoteClient] = []

    def factory(**pool_options) -> RemoteClient:
        pool_options.setdefault("connection_retry_delay", 0)
        pool_options.setdefault("exec_retry_delay", 0.01)
        client = RemoteClient(factory=host, **pool_options)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


@pytest.fixture
def client(client_factory):
    return client_factory()


def make_tree(root: Path, files: Dict[str, str]) -> Path:
    """Create files (relative path -> content) under root"""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root
