"""
Core interfaces for dependency injection

The pool, scheduler and transfer engine only talk to the transport through
these contracts. ``remotepool.core.session`` provides the paramiko-backed
implementation.
"""
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Callable, Dict, List, Optional


# Receives decoded stdout / stderr text of one command
OutputSink = Callable[[str], None]


class DataChannel(ABC):
    """File transfer channel opened over a Session (one SFTP subsystem)"""

    @abstractmethod
    def stat(self, path: str) -> Any:
        """Return attributes with st_mode / st_size / st_mtime, following links"""
        pass

    @abstractmethod
    def lstat(self, path: str) -> Any:
        """Return attributes without following links"""
        pass

    @abstractmethod
    def readdir(self, path: str) -> List[str]:
        """Return child entry names (without '.' and '..')"""
        pass

    @abstractmethod
    def mkdir(self, path: str) -> None:
        pass

    @abstractmethod
    def rmdir(self, path: str) -> None:
        pass

    @abstractmethod
    def unlink(self, path: str) -> None:
        pass

    @abstractmethod
    def realpath(self, path: str) -> str:
        """Canonical absolute path; raises ENOENT for a missing path"""
        pass

    @abstractmethod
    def chmod(self, path: str, mode: int) -> None:
        pass

    @abstractmethod
    def chown(self, path: str, uid: int, gid: int) -> None:
        pass

    @abstractmethod
    def stream_get(self, path: str) -> BinaryIO:
        """Open a remote file for reading"""
        pass

    @abstractmethod
    def stream_put(self, path: str) -> BinaryIO:
        """Open (truncate or create) a remote file for writing"""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self) -> "DataChannel":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class Session(ABC):
    """One authenticated transport connection"""

    @abstractmethod
    def connect(self) -> None:
        """Establish the connection, raise the transport error on failure"""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def exec(
        self,
        cmd: str,
        options: Optional[Dict[str, Any]] = None,
        stdout: Optional[OutputSink] = None,
        stderr: Optional[OutputSink] = None,
    ) -> int:
        """Run cmd, stream its output to the sinks and return the exit status"""
        pass

    @abstractmethod
    def open_data_channel(self) -> DataChannel:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class SessionFactory(ABC):
    """SSH session factory interface"""

    @abstractmethod
    def create(self) -> Session:
        """Create a new, not yet connected session"""
        pass
