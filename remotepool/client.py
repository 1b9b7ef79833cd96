"""
RemoteClient facade

Turns every public call into an Order, queues it on the client's own
Scheduler and waits for its future. Several clients can live in one process;
nothing is shared between them.
"""
from __future__ import annotations

import dataclasses
import glob as local_glob
import re
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Pattern, Union

from .core.constants import DEFAULT_WATCH_RETRY_DELAY
from .core.exceptions import CommandError, ConfigError, TransferError
from .core.interfaces import OutputSink, Session, SessionFactory
from .core.logging import get_logger
from .core.output import QueueSink, TailBuffer
from .core.session import ClientConfig, SSHSessionFactory
from .core.telemetry import Telemetry
from .core.utils import has_glob_magic, to_posix
from .domain.pool import ConnectionPool, PoolConfig
from .domain.scheduler import Order, OrderKind, Scheduler
from .domain.transfer import PathFilter, TransferEngine

logger = get_logger(__name__)

# Where command output goes: a callable sink, a list that receives the last
# chunks once the command is done, or None to discard it
OutputTarget = Union[OutputSink, List[str], None]
RegexLike = Union[str, Pattern[str]]


class _OutputBinding:
    """Adapts an OutputTarget to a sink for one order"""

    def __init__(self, target: OutputTarget):
        self.target = target
        self.finished = threading.Event()
        if target is None:
            self.sink: Optional[OutputSink] = None
        elif isinstance(target, list):
            self.sink = TailBuffer()
        elif callable(target):
            self.sink = target
        else:
            raise ConfigError(f"Unsupported output target: {type(target).__name__}")

    def finish(self, _future: Any = None) -> None:
        try:
            if isinstance(self.target, list):
                self.target[:] = self.sink.chunks
            elif isinstance(self.target, QueueSink):
                self.target.close()
        finally:
            self.finished.set()


class RemoteClient:
    """
    Resilient remote command / file transfer client:
    - at most ``max_connection`` SSH sessions shared by all calls
    - transient channel and connection failures are retried
    - errors surface as RemoteError subclasses with a normalized ``reason``
    - supports with-statement context management
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        pool_config: Optional[PoolConfig] = None,
        factory: Optional[SessionFactory] = None,
        telemetry: Optional[Telemetry] = None,
        **pool_options: Any,
    ) -> None:
        """
        Initialize client. Nothing is connected until the first order runs.

        Args:
            config: Connection parameters, used to build an SSHSessionFactory
            pool_config: Pool options; keyword ``pool_options`` override its fields
            factory: Session factory, takes precedence over config
            telemetry: Statistics collector (a new one if None)
        """
        if factory is None:
            if config is None:
                raise ConfigError("Either config or factory is required")
            factory = SSHSessionFactory(config)

        base = pool_config.to_dict() if pool_config else {}
        base.update(pool_options)
        self.factory = factory
        self.pool_config = PoolConfig.from_dict(base)
        self.telemetry = telemetry or Telemetry()
        self.pool = ConnectionPool(factory, self.pool_config, self.telemetry)
        self.scheduler = Scheduler(self.pool, self.pool_config, self.telemetry)

    # ============================================================
    # Order plumbing
    # ============================================================

    def submit(self, order: Order) -> Order:
        """Queue an order; its ``result`` future completes when it is done"""
        return self.scheduler.enqueue(order)

    def cancel(self, order: Order) -> bool:
        return self.scheduler.cancel(order)

    def _run(self, order: Order) -> Any:
        return self.submit(order).result.result()

    def _data_order(
        self,
        kind: OrderKind,
        operation: Callable[[TransferEngine], Any],
        **payload: Any,
    ) -> Order:
        def handler(session: Session, order: Order) -> Any:
            with session.open_data_channel() as channel:
                engine = TransferEngine(channel, cancel_event=order.cancel_event)
                return operation(engine)

        return Order(kind=kind, handler=handler, payload=payload, retry_on_reconnect=True)

    # ============================================================
    # Command execution
    # ============================================================

    def submit_exec(
        self,
        cmd: str,
        options: Optional[Dict[str, Any]] = None,
        stdout: OutputTarget = None,
        stderr: OutputTarget = None,
    ) -> Order:
        """
        Queue a command without waiting.

        Args:
            cmd: Command line
            options: ``env`` / ``timeout`` passed to the session
            stdout: Callable sink, list (receives the last chunks) or None
            stderr: Same as stdout

        Returns:
            Order whose ``result`` future yields the exit status
        """
        if not isinstance(cmd, str):
            raise CommandError("cmd must be string")

        out, err = _OutputBinding(stdout), _OutputBinding(stderr)

        def handler(session: Session, order: Order) -> int:
            return session.exec(cmd, options, stdout=out.sink, stderr=err.sink)

        order = Order(
            kind=OrderKind.EXEC,
            handler=handler,
            payload={"cmd": cmd, "options": options or {}},
        )
        order.result.add_done_callback(out.finish)
        order.result.add_done_callback(err.finish)
        order.payload["bindings"] = (out, err)
        return self.submit(order)

    def exec(
        self,
        cmd: str,
        options: Optional[Dict[str, Any]] = None,
        stdout: OutputTarget = None,
        stderr: OutputTarget = None,
    ) -> int:
        """
        Run a command and wait for it.

        Returns:
            Exit status of the command (non-zero is not an error)

        Raises:
            CommandError: If the command could not be run
            ConnectionError: If no session could be established
        """
        order = self.submit_exec(cmd, options, stdout, stderr)
        try:
            return order.result.result()
        finally:
            for binding in order.payload["bindings"]:
                binding.finished.wait()

    def watch(
        self,
        cmd: str,
        pattern: Optional[RegexLike] = None,
        retry_delay: float = DEFAULT_WATCH_RETRY_DELAY,
        max_retry: Optional[int] = None,
        options: Optional[Dict[str, Any]] = None,
        stdout: OutputTarget = None,
        stderr: OutputTarget = None,
        out_pattern: Optional[RegexLike] = None,
        err_pattern: Optional[RegexLike] = None,
    ) -> int:
        """
        Re-run a command until its output matches.

        Args:
            cmd: Command line
            pattern: Regex searched in stdout and stderr
            retry_delay: Seconds between runs
            max_retry: Number of re-runs after the first one (None: unlimited)
            options: Passed to exec
            stdout: Output target for every run
            stderr: Output target for every run
            out_pattern: Regex for stdout only, overrides pattern
            err_pattern: Regex for stderr only, overrides pattern

        Returns:
            Exit status of the run that matched

        Raises:
            CommandError: If no pattern is given or the retry budget is spent
        """
        regex_out = _compile(out_pattern if out_pattern is not None else pattern)
        regex_err = _compile(err_pattern if err_pattern is not None else pattern)
        if regex_out is None and regex_err is None:
            raise CommandError("illegal regexp specified")

        attempt = 0
        while True:
            matched = threading.Event()
            out_binding, err_binding = _OutputBinding(stdout), _OutputBinding(stderr)

            def checker(regex: Optional[Pattern[str]], sink: Optional[OutputSink]) -> OutputSink:
                def check(data: str) -> None:
                    if regex is not None and not matched.is_set() and regex.search(data):
                        matched.set()
                    if sink is not None:
                        sink(data)
                return check

            rc = self.exec(
                cmd,
                options,
                stdout=checker(regex_out, out_binding.sink),
                stderr=checker(regex_err, err_binding.sink),
            )
            out_binding.finish()
            err_binding.finish()

            if matched.is_set():
                return rc

            attempt += 1
            if max_retry is not None and attempt > max_retry:
                raise CommandError(
                    f"output of '{cmd}' did not match after {attempt} run(s)",
                    reason="output string does not matched specified regexp",
                )
            logger.debug(f"watch: '{cmd}' not matched yet, retry in {retry_delay}s")
            time.sleep(retry_delay)

    # ============================================================
    # File transfer
    # ============================================================

    def send(
        self,
        src: str,
        dst: str,
        only: Optional[str] = None,
        exclude: Optional[str] = None,
    ) -> Any:
        """
        Upload local files or directory trees.

        ``src`` may be a glob; every match becomes its own order. Directories
        land at ``dst/basename(src)``.

        Args:
            src: Local file, directory or glob pattern
            dst: Remote destination
            only: Glob a file must match to be sent
            exclude: Glob of files never sent, even if they match ``only``

        Returns:
            Result of the single transfer, or a list of results for a glob

        Raises:
            TransferError: If src matches nothing or a transfer fails
        """
        if not isinstance(dst, str):
            raise TransferError("dst must be string")

        sources = sorted(local_glob.glob(src)) if has_glob_magic(src) else [src]
        sources = [s for s in sources if Path(s).exists()]
        if not sources:
            raise TransferError("src must be existing file or directory")

        orders = [self.submit(self._send_order(s, dst, only, exclude)) for s in sources]
        results = [order.result.result() for order in orders]
        return results[0] if len(results) == 1 else results

    def _send_order(self, src: str, dst: str, only: Optional[str], exclude: Optional[str]) -> Order:
        if Path(src).is_dir():
            return self._data_order(
                OrderKind.RECURSIVE_PUT,
                lambda engine: engine.rput(src, dst, only, exclude),
                src=src, dst=dst,
            )

        def put(engine: TransferEngine) -> Optional[str]:
            if not PathFilter(only, exclude).accepts(to_posix(src)):
                logger.debug(f"send: {src} skipped by filter")
                return None
            return engine.put(src, dst)

        return self._data_order(OrderKind.PUT, put, src=src, dst=dst)

    def recv(
        self,
        src: str,
        dst: str,
        only: Optional[str] = None,
        exclude: Optional[str] = None,
        recursive: bool = False,
    ) -> Any:
        """
        Download remote files or directory trees.

        A remote glob is expanded on the host; a directory source is fetched
        recursively to ``dst/basename(src)``.

        Args:
            src: Remote file, directory or glob pattern
            dst: Local destination
            only: Glob a file must match to be received
            exclude: Glob of files never received
            recursive: Treat src as a directory without probing it first

        Raises:
            TransferError: If src is missing or a transfer fails
        """
        if not isinstance(src, str):
            raise TransferError("src must be string")

        if recursive:
            return self._run(self._data_order(
                OrderKind.RECURSIVE_GET,
                lambda engine: engine.rget(src, dst, only, exclude),
                src=src, dst=dst,
            ))

        path_filter = PathFilter(only, exclude)

        def get_one(engine: TransferEngine, path: str) -> Any:
            if not engine.exists(path):
                raise TransferError("src must be existing file or directory")
            if engine.is_dir(path):
                return engine.rget(path, dst, only, exclude)
            if not path_filter.accepts(path):
                logger.debug(f"recv: {path} skipped by filter")
                return None
            return engine.get(path, dst)

        def get(engine: TransferEngine) -> Any:
            if not has_glob_magic(src):
                return get_one(engine, src)
            matches = engine.glob(src)
            if not matches:
                raise TransferError("src must be existing file or directory")
            return [get_one(engine, path) for path in matches]

        return self._run(self._data_order(OrderKind.GET, get, src=src, dst=dst))

    # ============================================================
    # Remote filesystem
    # ============================================================

    def ls(self, path: str) -> List[str]:
        return self._run(self._data_order(OrderKind.LIST, lambda e: e.ls(path), path=path))

    def mkdir_p(self, path: str) -> None:
        """Create a remote directory and its parents (like mkdir -p)"""
        self._run(self._data_order(OrderKind.MKDIR, lambda e: e.mkdir_p(path), path=path))

    def realpath(self, path: str) -> str:
        return self._run(self._data_order(OrderKind.REALPATH, lambda e: e.realpath(path), path=path))

    def rm(self, path: str, recursive: bool = False) -> None:
        """Remove a remote file or directory (recursive like rm -rf)"""
        self._run(self._data_order(
            OrderKind.REMOVE, lambda e: e.rm(path, recursive=recursive), path=path
        ))

    def chmod(self, path: str, mode: int) -> None:
        self._run(self._data_order(OrderKind.CHMOD, lambda e: e.chmod(path, mode), path=path))

    def chown(self, path: str, uid: int, gid: int) -> None:
        self._run(self._data_order(OrderKind.CHOWN, lambda e: e.chown(path, uid, gid), path=path))

    # ============================================================
    # Connection management
    # ============================================================

    def can_connect(self) -> bool:
        """
        Check that a session can be established.

        Returns:
            True

        Raises:
            ConnectionError: With the classified reason on failure
        """
        conn = self.pool.get_connection()
        self.pool.release(conn)
        return True

    def disconnect(self) -> None:
        """Close every session; later calls reconnect lazily"""
        logger.debug("disconnecting all sessions")
        self.pool.disconnect_all()

    def change_config(self, key: str, value: Any) -> None:
        """
        Change one pool option or connection parameter.

        Pool options apply to following dispatches. Connection parameters
        replace the session factory's config and drop existing sessions.

        Raises:
            ConfigError: If key is unknown or value is invalid
        """
        if key in PoolConfig.__dataclass_fields__:
            data = self.pool_config.to_dict()
            data[key] = value
            new_config = PoolConfig.from_dict(data)
            self.pool_config = new_config
            self.pool.update_config(new_config)
            self.scheduler.update_config(new_config)
            logger.debug(f"pool option {key} set to {value}")
            return

        config = getattr(self.factory, "config", None)
        if isinstance(config, ClientConfig) and key in ClientConfig.__dataclass_fields__:
            self.overwrite_config(dataclasses.replace(config, **{key: value}))
            return

        raise ConfigError(f"Unknown config key: {key}")

    def overwrite_config(self, config: ClientConfig) -> None:
        """Replace the whole connection config; existing sessions are dropped"""
        if not hasattr(self.factory, "config"):
            raise ConfigError("Session factory does not take a ClientConfig")
        self.factory.config = config
        self.pool.disconnect_all()
        logger.debug(f"connection config replaced: {config.to_dict()}")

    @property
    def num_reconnect(self) -> int:
        return self.telemetry.count("reconnect")

    def stats(self) -> Dict[str, Any]:
        """Current pool / queue figures and retry counters"""
        return {
            "connections": self.pool.size,
            "queued": len(self.scheduler.pending()),
            "running": self.scheduler.num_running,
            "reconnects": self.telemetry.count("reconnect"),
            "requeues": self.telemetry.count("requeue"),
            "dispatched": self.telemetry.count("dispatch"),
        }

    def close(self) -> None:
        """Stop the scheduler, fail queued orders and close every session"""
        self.scheduler.shutdown()
        self.pool.disconnect_all()

    def __enter__(self) -> "RemoteClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _compile(pattern: Optional[RegexLike]) -> Optional[Pattern[str]]:
    if pattern is None:
        return None
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern)
