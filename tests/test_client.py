"""
RemoteClient end to end over the fake host
"""
import os
import threading

import paramiko
import pytest

from remotepool import RemoteClient
from remotepool.core.exceptions import (
    CommandError,
    ConfigError,
    ConnectionError,
    SessionLostError,
    TransferError,
)
from remotepool.core.output import QueueSink
from remotepool.core.session import ClientConfig

from conftest import make_tree


# ---------------------------------------------------------------------------
# exec
# ---------------------------------------------------------------------------

def test_exec_returns_status_and_tail(client, host):
    def script(stdout, stderr):
        for i in range(8):
            stdout(f"line {i}\n")
        stderr("warn\n")
        return 3

    host.commands["build"] = script
    out, err = [], []

    assert client.exec("build", stdout=out, stderr=err) == 3
    assert out == [f"line {i}\n" for i in range(3, 8)]
    assert err == ["warn\n"]


def test_exec_callable_sink(client):
    received = []
    assert client.exec("echo hello", stdout=received.append) == 0
    assert received == ["hello\n"]


def test_exec_rejects_non_string(client):
    with pytest.raises(CommandError, match="cmd must be string"):
        client.exec(["ls"])


def test_exec_shares_one_session(client_factory, host):
    client = client_factory(max_connection=1)
    for i in range(3):
        assert client.exec(f"echo {i}") == 0
    assert len(host.sessions) == 1
    assert host.exec_log == ["echo 0", "echo 1", "echo 2"]


def test_parallel_exec_within_bound(client_factory, host):
    client = client_factory(max_connection=2)
    orders = [client.submit_exec(f"echo {i}") for i in range(10)]
    assert [o.result.result(timeout=10) for o in orders] == [0] * 10
    assert 1 <= len(host.sessions) <= 2


def test_exec_channel_busy_is_requeued(client, host):
    host.exec_errors.append(paramiko.ChannelException(2, "Connect failed"))
    out = []

    assert client.exec("echo again", stdout=out) == 0

    assert out == ["again\n"]
    assert client.stats()["requeues"] == 1
    assert host.exec_log == ["echo again", "echo again"]


def test_exec_session_lost(client, host):
    host.exec_errors.append(EOFError())

    with pytest.raises(SessionLostError):
        client.exec("echo once")

    assert client.num_reconnect == 1
    assert host.exec_log == ["echo once"]
    # the next command gets a fresh session
    assert client.exec("echo twice") == 0
    assert len(host.sessions) == 2


def test_exec_fatal_error(client, host):
    host.exec_errors.append(PermissionError(13, "Permission denied"))
    with pytest.raises(CommandError) as excinfo:
        client.exec("echo x")
    assert excinfo.value.reason == "permission denied"
    assert excinfo.value.category == "exec-fatal"


def test_submit_exec_streams_into_queue(client):
    sink = QueueSink()
    order = client.submit_exec("echo streamed", stdout=sink)

    assert list(sink) == ["streamed\n"]
    assert order.result.result(timeout=10) == 0


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------

def test_watch_until_match(client, host):
    runs = []

    def status(stdout, stderr):
        runs.append(1)
        stdout("READY\n" if len(runs) == 3 else "starting\n")
        return 0

    host.commands["status"] = status

    assert client.watch("status", r"READY", retry_delay=0) == 0
    assert len(runs) == 3


def test_watch_on_stderr_only(client, host):
    def status(stdout, stderr):
        stdout("done\n")
        stderr("done\n")
        return 1

    host.commands["status"] = status
    assert client.watch("status", err_pattern="done", retry_delay=0) == 1


def test_watch_gives_up(client, host):
    host.commands["status"] = lambda stdout, stderr: stdout("starting\n") or 0

    with pytest.raises(CommandError) as excinfo:
        client.watch("status", "READY", retry_delay=0, max_retry=2)

    assert excinfo.value.reason == "output string does not matched specified regexp"
    assert host.exec_log == ["status"] * 3


def test_watch_requires_pattern(client):
    with pytest.raises(CommandError, match="illegal regexp specified"):
        client.watch("status")


# ---------------------------------------------------------------------------
# send / recv
# ---------------------------------------------------------------------------

def test_send_file(client, local_dir, remote_root):
    make_tree(local_dir, {"data.txt": "payload"})
    (remote_root / "dst").mkdir()

    assert client.send(str(local_dir / "data.txt"), "dst/") == "dst/data.txt"
    assert (remote_root / "dst" / "data.txt").read_text() == "payload"


def test_send_glob(client, local_dir, remote_root):
    make_tree(local_dir, {"a.txt": "a", "b.txt": "b", "c.log": "c"})

    results = client.send(str(local_dir / "*.txt"), "dst/")

    assert results == ["dst/a.txt", "dst/b.txt"]
    assert sorted(os.listdir(remote_root / "dst")) == ["a.txt", "b.txt"]


def test_send_directory_with_filters(client, local_dir, remote_root):
    make_tree(local_dir / "proj", {"main.py": "", "notes.md": "", "pkg/mod.py": ""})

    plan = client.send(str(local_dir / "proj"), "dst", only="**/*.py")

    assert sorted(e.rel_path for e in plan.files) == ["main.py", "pkg/mod.py"]
    assert sorted(os.listdir(remote_root / "dst" / "proj")) == ["main.py", "pkg"]


def test_send_file_skipped_by_filter(client, local_dir, remote_root):
    make_tree(local_dir, {"data.txt": "payload"})
    assert client.send(str(local_dir / "data.txt"), "dst/", only="*.log") is None
    assert not (remote_root / "dst").exists()


def test_send_missing_source(client, local_dir):
    with pytest.raises(TransferError, match="src must be existing file or directory"):
        client.send(str(local_dir / "missing"), "dst")
    with pytest.raises(TransferError, match="src must be existing file or directory"):
        client.send(str(local_dir / "*.none"), "dst")


def test_recv_file_and_directory(client, local_dir, remote_root):
    make_tree(remote_root / "data", {"a.txt": "a", "sub/b.txt": "b"})

    assert client.recv("data/a.txt", str(local_dir)) == str(local_dir / "a.txt")
    client.recv("data", str(local_dir / "copy"))

    assert (local_dir / "a.txt").read_text() == "a"
    assert (local_dir / "copy" / "data" / "sub" / "b.txt").read_text() == "b"


def test_recv_recursive_with_exclude(client, local_dir, remote_root):
    make_tree(remote_root / "data", {"a.txt": "a", "b.log": "b"})

    client.recv("data", str(local_dir), exclude="*.log", recursive=True)

    assert os.listdir(local_dir / "data") == ["a.txt"]


def test_recv_glob(client, local_dir, remote_root):
    make_tree(remote_root / "logs", {"1.txt": "1", "2.txt": "2", "3.log": "3"})

    results = client.recv("logs/*.txt", str(local_dir) + "/")

    assert results == [str(local_dir / "1.txt"), str(local_dir / "2.txt")]
    assert sorted(os.listdir(local_dir)) == ["1.txt", "2.txt"]


def test_recv_glob_without_match(client, local_dir):
    with pytest.raises(TransferError, match="src must be existing file or directory"):
        client.recv("logs/*.none", str(local_dir))


def test_recv_missing_file(client, local_dir):
    with pytest.raises(TransferError) as excinfo:
        client.recv("missing.txt", str(local_dir))
    assert excinfo.value.reason == "src must be existing file or directory"


def test_data_order_survives_lost_session(client, host, remote_root):
    make_tree(remote_root, {"dir/x": ""})
    host.channel_errors.append(paramiko.SSHException("SSH session not active"))

    assert client.ls("dir") == ["x"]
    assert client.num_reconnect == 1
    assert len(host.sessions) == 2


# ---------------------------------------------------------------------------
# Remote filesystem
# ---------------------------------------------------------------------------

def test_filesystem_operations(client, remote_root):
    client.mkdir_p("a/b")
    make_tree(remote_root, {"a/b/file": "x"})

    assert client.ls("a") == ["b"]
    assert client.realpath("a/b") == "/a/b"

    client.chmod("a/b/file", 0o640)
    assert (remote_root / "a" / "b" / "file").stat().st_mode & 0o777 == 0o640
    client.chown("a/b/file", 1000, 1000)

    client.rm("a", recursive=True)
    assert not (remote_root / "a").exists()


def test_mkdir_p_on_existing_file(client, remote_root):
    make_tree(remote_root, {"file": "x"})
    with pytest.raises(TransferError) as excinfo:
        client.mkdir_p("file")
    assert excinfo.value.code == "EEXIST"
    assert excinfo.value.reason == "already exists"


def test_rm_missing(client):
    with pytest.raises(TransferError) as excinfo:
        client.rm("missing")
    assert excinfo.value.reason == "no such file"


# ---------------------------------------------------------------------------
# Connection management
# ---------------------------------------------------------------------------

def test_can_connect(client, host):
    assert client.can_connect() is True
    assert host.sessions[0].connected


def test_can_connect_authentication_failure(client, host):
    host.connect_errors.append(paramiko.AuthenticationException("Authentication failed."))

    with pytest.raises(ConnectionError) as excinfo:
        client.can_connect()

    assert excinfo.value.reason == "authentication failure"
    assert excinfo.value.category == "connect-fatal"
    assert host.connect_calls == 1


def test_disconnect_reconnects_lazily(client, host):
    client.exec("echo 1")
    client.disconnect()
    assert host.sessions[0].closed

    client.exec("echo 2")
    assert host.connect_calls == 2


def test_change_pool_option(client):
    client.change_config("max_connection", 2)
    assert client.pool_config.max_connection == 2
    assert client.scheduler.max_running == 4

    with pytest.raises(ConfigError):
        client.change_config("max_connection", 0)
    with pytest.raises(ConfigError, match="Unknown config key"):
        client.change_config("colour", "blue")


def test_change_connection_parameter():
    client = RemoteClient(ClientConfig(host="h", user="u"))
    try:
        client.change_config("port", 2222)
        assert client.factory.config.port == 2222
        assert client.factory.config.host == "h"
    finally:
        client.close()


def test_client_requires_config_or_factory():
    with pytest.raises(ConfigError):
        RemoteClient()


def test_stats(client):
    client.exec("echo 1")
    stats = client.stats()
    assert stats["connections"] == 1
    assert stats["dispatched"] == 1
    assert stats["queued"] == 0


def test_closed_client_rejects_orders(client_factory, host):
    client = client_factory()
    client.exec("echo 1")
    client.close()

    assert host.sessions[0].closed
    with pytest.raises(ConnectionError) as excinfo:
        client.exec("echo 2")
    assert excinfo.value.reason == "client closed"


def test_context_manager(client_factory, host):
    with client_factory() as client:
        client.exec("echo 1")
    with pytest.raises(ConnectionError):
        client.ls(".")


def test_clients_are_independent(client_factory, host):
    first, second = client_factory(max_connection=1), client_factory(max_connection=1)
    done = threading.Event()

    def slow(stdout, stderr):
        done.wait(5)
        return 0

    host.commands["slow"] = slow
    order = first.submit_exec("slow")
    # second client has its own pool and is not blocked by the first
    assert second.exec("echo free") == 0
    done.set()
    assert order.result.result(timeout=10) == 0
    assert len(host.sessions) == 2


def test_order_durations_are_recorded(client):
    client.exec("echo 1")
    client.ls(".")
    kinds = [m.tags["kind"] for m in client.telemetry.get_metrics() if m.name == "order.duration"]
    assert kinds == ["exec", "list"]
