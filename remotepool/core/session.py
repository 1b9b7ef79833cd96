from __future__ import annotations
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Literal, Optional
from pathlib import Path
import codecs
import time

import paramiko

from .constants import DEFAULT_SSH_PORT, DEFAULT_SSH_TIMEOUT, OUTPUT_READ_SIZE
from .exceptions import CommandError, ConfigError
from .interfaces import DataChannel, OutputSink, Session, SessionFactory
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class ClientConfig:
    host: str
    user: str
    port: int = DEFAULT_SSH_PORT
    auth_method: Literal["password", "key"] = "password"
    password: Optional[str] = None
    key_path: Optional[str] = None
    key_passphrase: Optional[str] = None
    timeout: float = DEFAULT_SSH_TIMEOUT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (secrets omitted)"""
        return {
            "host": self.host,
            "user": self.user,
            "port": self.port,
            "auth_method": self.auth_method,
            "key_path": self.key_path,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        """Create from dictionary, accepting the `key` alias used in TOML files"""
        data = dict(data)
        if "key" in data and "key_path" not in data:
            data["key_path"] = data.pop("key")
        if data.get("key_path") and "auth_method" not in data:
            data["auth_method"] = "key"
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)


class SFTPDataChannel(DataChannel):
    """DataChannel over one paramiko SFTPClient"""

    def __init__(self, sftp: paramiko.SFTPClient) -> None:
        self.sftp = sftp

    def stat(self, path: str) -> paramiko.SFTPAttributes:
        return self.sftp.stat(path)

    def lstat(self, path: str) -> paramiko.SFTPAttributes:
        return self.sftp.lstat(path)

    def readdir(self, path: str) -> List[str]:
        return self.sftp.listdir(path)

    def mkdir(self, path: str) -> None:
        self.sftp.mkdir(path)

    def rmdir(self, path: str) -> None:
        self.sftp.rmdir(path)

    def unlink(self, path: str) -> None:
        self.sftp.remove(path)

    def realpath(self, path: str) -> str:
        return self.sftp.normalize(path)

    def chmod(self, path: str, mode: int) -> None:
        self.sftp.chmod(path, mode)

    def chown(self, path: str, uid: int, gid: int) -> None:
        self.sftp.chown(path, uid, gid)

    def stream_get(self, path: str) -> BinaryIO:
        remote_file = self.sftp.open(path, "rb")
        remote_file.prefetch()
        return remote_file

    def stream_put(self, path: str) -> BinaryIO:
        remote_file = self.sftp.open(path, "wb")
        remote_file.set_pipelined(True)
        return remote_file

    def close(self) -> None:
        self.sftp.close()


class _StreamDecoder:
    """UTF-8 decoding across read boundaries, forwarding text to one sink"""

    def __init__(self, sink: Optional[OutputSink]) -> None:
        self.sink = sink
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, data: bytes) -> None:
        self._emit(self._decoder.decode(data))

    def flush(self) -> None:
        self._emit(self._decoder.decode(b"", final=True))

    def _emit(self, text: str) -> None:
        if text and self.sink is not None:
            self.sink(text)


class SSHSession(Session):
    """
    Paramiko SSHClient wrapper used as one pooled session:
    - keeps host / user / port explicitly
    - supports password and key login
    - loads Ed25519 / ECDSA / RSA private keys
    - exec with per-call stdout / stderr sinks, one SFTP channel per data channel
    """
    def __init__(self, config: ClientConfig) -> None:
        self.config = config
        self.client = paramiko.SSHClient()
        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    # --------------------
    # Connection management
    # --------------------
    def connect(self) -> None:
        cfg = self.config
        kwargs: Dict[str, Any] = {
            "hostname": cfg.host,
            "port": cfg.port,
            "username": cfg.user,
            "timeout": cfg.timeout,
            "banner_timeout": cfg.timeout,
            "auth_timeout": cfg.timeout,
            "allow_agent": False,
            "look_for_keys": False,
        }

        if cfg.auth_method == "password":
            kwargs["password"] = cfg.password
        elif cfg.auth_method == "key":
            kwargs["pkey"] = self._load_private_key(cfg.key_path, cfg.key_passphrase)
        else:
            raise ConfigError(f"Unsupported auth method: {cfg.auth_method}")

        logger.debug(f"connecting to {cfg.user}@{cfg.host}:{cfg.port}")
        self.client.connect(**kwargs)

    def is_connected(self) -> bool:
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()

    def close(self) -> None:
        self.client.close()

    # --------------------
    # Load private key
    # --------------------
    def _load_private_key(self, path: Optional[str], passphrase: Optional[str]) -> paramiko.PKey:
        """Probe Ed25519, ECDSA then RSA"""
        if not path:
            raise ConfigError("Key authentication requires key_path", reason="invalid private key")
        p = Path(path).expanduser()

        last_error: Optional[Exception] = None
        for key_class in (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey):
            try:
                return key_class.from_private_key_file(str(p), password=passphrase)
            except paramiko.PasswordRequiredException:
                raise
            except (paramiko.SSHException, OSError, ValueError) as e:
                last_error = e
        raise ConfigError(
            f"Failed to load private key at {p}", reason="invalid private key"
        ) from last_error

    # --------------------
    # Helpers
    # --------------------
    def _transport(self) -> paramiko.Transport:
        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            raise paramiko.SSHException("Not connected")
        return transport

    def exec(
        self,
        cmd: str,
        options: Optional[Dict[str, Any]] = None,
        stdout: Optional[OutputSink] = None,
        stderr: Optional[OutputSink] = None,
    ) -> int:
        """
        Execute a command, feed its output to the sinks, return the exit code.

        Args:
            cmd: Command line
            options: ``env`` (dict) and ``timeout`` (seconds) are recognized
            stdout: Sink for stdout text
            stderr: Sink for stderr text

        Returns:
            Exit status of the remote process
        """
        options = options or {}
        # ChannelException here means the server refused a new channel right now
        channel = self._transport().open_session(timeout=self.config.timeout)
        try:
            if options.get("env"):
                channel.update_environment(options["env"])
            if options.get("timeout"):
                channel.settimeout(options["timeout"])
            channel.exec_command(cmd)

            # Poll both streams until the process exits, then drain what is left
            out = _StreamDecoder(stdout)
            err = _StreamDecoder(stderr)
            while not channel.exit_status_ready():
                if not self._pump_output(channel, out, err):
                    time.sleep(0.01)
            while self._pump_output(channel, out, err):
                pass
            out.flush()
            err.flush()

            exit_code = channel.recv_exit_status()
        finally:
            channel.close()

        if exit_code < 0:
            raise CommandError(
                f"remote process of '{cmd}' ended without exit status",
                reason="remote process interrupted",
            )
        return exit_code

    @staticmethod
    def _pump_output(channel: paramiko.Channel, stdout: "_StreamDecoder", stderr: "_StreamDecoder") -> bool:
        has_output = False
        if channel.recv_ready():
            data = channel.recv(OUTPUT_READ_SIZE)
            if data:
                has_output = True
                stdout.feed(data)
        if channel.recv_stderr_ready():
            data = channel.recv_stderr(OUTPUT_READ_SIZE)
            if data:
                has_output = True
                stderr.feed(data)
        return has_output

    def open_data_channel(self) -> SFTPDataChannel:
        self._transport()
        return SFTPDataChannel(self.client.open_sftp())


class SSHSessionFactory(SessionFactory):
    """Creates SSHSession instances from one ClientConfig"""

    def __init__(self, config: ClientConfig) -> None:
        self.config = config

    def create(self) -> SSHSession:
        return SSHSession(self.config)
