"""
Transfer engine

File operations over one DataChannel. Every method runs on the caller's
thread; the scheduler gives each order its own engine and data channel.
"""
import errno
import os
import posixpath
import stat
import threading
from pathlib import Path
from typing import Any, BinaryIO, List, Optional, Set

from ...core.constants import PERMISSION_MASK, TRANSFER_CHUNK_SIZE
from ...core.exceptions import TransferError
from ...core.interfaces import DataChannel
from ...core.logging import get_logger
from ...core.utils import ends_with_sep, has_glob_magic, remote_basename, strip_trailing_sep, to_posix
from .filters import segment_glob_to_regex
from .models import TransferEntry, TransferPlan
from .walker import build_plan, walk_local, walk_remote

logger = get_logger(__name__)

_MISSING = (errno.ENOENT, errno.ENOTDIR)


class TransferEngine:
    """File and directory operations on a remote host"""

    def __init__(
        self,
        channel: DataChannel,
        cancel_event: Optional[threading.Event] = None,
        chunk_size: int = TRANSFER_CHUNK_SIZE,
    ):
        """
        Initialize engine.

        Args:
            channel: Open data channel, owned by the caller
            cancel_event: Checked between chunks, set to abort a transfer
            chunk_size: Bytes per read / write
        """
        self.channel = channel
        self.cancel_event = cancel_event
        self.chunk_size = chunk_size

    # ============================================================
    # Inspection
    # ============================================================

    def _stat_or_none(self, path: str) -> Optional[Any]:
        try:
            return self.channel.stat(path)
        except OSError as e:
            if e.errno in _MISSING:
                return None
            raise

    def is_dir(self, path: str) -> bool:
        attrs = self._stat_or_none(to_posix(path))
        return attrs is not None and stat.S_ISDIR(attrs.st_mode)

    def exists(self, path: str) -> bool:
        return self._stat_or_none(to_posix(path)) is not None

    def is_file(self, path: str) -> bool:
        attrs = self._stat_or_none(to_posix(path))
        return attrs is not None and stat.S_ISREG(attrs.st_mode)

    def ls(self, path: str) -> List[str]:
        """
        List a remote path.

        Returns:
            Child names of a directory, ``[basename]`` for a file, ``[]`` if missing
        """
        path = to_posix(path)
        attrs = self._stat_or_none(path)
        if attrs is None:
            return []
        if stat.S_ISDIR(attrs.st_mode):
            return sorted(self.channel.readdir(path))
        return [remote_basename(path)]

    def realpath(self, path: str) -> str:
        return self.channel.realpath(to_posix(path))

    def glob(self, pattern: str) -> List[str]:
        """Expand a remote glob pattern segment by segment; only existing paths are returned"""
        pattern = to_posix(pattern)
        if not has_glob_magic(pattern):
            return [pattern] if self._stat_or_none(pattern) is not None else []

        candidates = ["/" if pattern.startswith("/") else ""]
        for segment in (s for s in pattern.split("/") if s):
            matched: List[str] = []
            for base in candidates:
                if not has_glob_magic(segment):
                    matched.append(posixpath.join(base, segment) if base else segment)
                    continue
                directory = base or "."
                if not self.is_dir(directory):
                    continue
                regex = segment_glob_to_regex(segment)
                for name in sorted(self.channel.readdir(directory)):
                    if name.startswith(".") and not segment.startswith("."):
                        continue
                    if regex.match(name):
                        matched.append(posixpath.join(base, name) if base else name)
            candidates = matched

        return [c for c in candidates if self._stat_or_none(c) is not None]

    # ============================================================
    # Modification
    # ============================================================

    def mkdir_p(self, path: str) -> None:
        """
        Create a remote directory and its missing parents.

        Probes upward with realpath until an existing ancestor is found, then
        creates the missing segments downward from it.

        Raises:
            FileExistsError: If path is an existing non-directory
        """
        path = strip_trailing_sep(to_posix(path))
        attrs = self._stat_or_none(path)
        if attrs is not None:
            if stat.S_ISDIR(attrs.st_mode):
                return
            raise FileExistsError(errno.EEXIST, "File exists", path)

        missing: List[str] = []
        candidate = path
        while True:
            try:
                existing = self.channel.realpath(candidate)
                break
            except OSError as e:
                if e.errno != errno.ENOENT:
                    raise
                parent = posixpath.dirname(candidate) or "."
                if parent == candidate:
                    raise
                missing.append(posixpath.basename(candidate))
                candidate = parent

        current = existing
        while missing:
            current = posixpath.join(current, missing.pop())
            try:
                self.channel.mkdir(current)
            except OSError:
                # Created by someone else in the meantime
                if self.is_dir(current):
                    logger.debug(f"mkdir_p: {current} already created")
                    continue
                raise

    def rm(self, path: str, recursive: bool = False) -> None:
        """Remove a file or a directory (must be empty unless recursive)"""
        path = to_posix(path)
        attrs = self.channel.lstat(path)
        if stat.S_ISDIR(attrs.st_mode):
            if recursive:
                for name in self.channel.readdir(path):
                    self.rm(posixpath.join(path, name), recursive=True)
            self.channel.rmdir(path)
        else:
            self.channel.unlink(path)

    def chmod(self, path: str, mode: int) -> None:
        self.channel.chmod(to_posix(path), mode)

    def chown(self, path: str, uid: int, gid: int) -> None:
        self.channel.chown(to_posix(path), uid, gid)

    # ============================================================
    # Single file transfer
    # ============================================================

    def _copy(self, reader: BinaryIO, writer: BinaryIO, label: str) -> int:
        total = 0
        while True:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise TransferError(f"Transfer of {label} cancelled", reason="cancelled")
            data = reader.read(self.chunk_size)
            if not data:
                return total
            writer.write(data)
            total += len(data)

    def _upload(self, local: Path, remote: str, mode: int) -> None:
        with open(local, "rb") as reader, self.channel.stream_put(remote) as writer:
            size = self._copy(reader, writer, str(local))
        self.channel.chmod(remote, mode & PERMISSION_MASK)
        logger.debug(f"put {local} -> {remote} ({size} bytes)")

    def _download(self, remote: str, local: Path, mode: int) -> None:
        with self.channel.stream_get(remote) as reader, open(local, "wb") as writer:
            size = self._copy(reader, writer, remote)
        os.chmod(local, mode & PERMISSION_MASK)
        logger.debug(f"get {remote} -> {local} ({size} bytes)")

    def put(self, src: str, dst: str) -> str:
        """
        Upload one local file.

        Args:
            src: Local regular file
            dst: Remote target; an existing directory or a path ending in '/'
                receives ``dst/basename(src)``, anything else is the exact name

        Returns:
            Remote path written

        Raises:
            TransferError: If src is not a regular file
        """
        local = Path(src)
        if not local.is_file():
            raise TransferError("src must be file")

        dst = to_posix(dst)
        if ends_with_sep(dst) or self.is_dir(dst):
            directory = strip_trailing_sep(dst)
            self.mkdir_p(directory)
            target = posixpath.join(directory, local.name)
        else:
            target = dst
            parent = posixpath.dirname(target)
            if parent:
                self.mkdir_p(parent)

        self._upload(local, target, local.stat().st_mode)
        return target

    def get(self, src: str, dst: str) -> str:
        """
        Download one remote file.

        Args:
            src: Remote regular file
            dst: Local target, same directory rules as ``put``

        Returns:
            Local path written

        Raises:
            TransferError: If src is not a regular file
        """
        src = to_posix(src)
        attrs = self._stat_or_none(src)
        if attrs is None or not stat.S_ISREG(attrs.st_mode):
            raise TransferError("src must be file")

        local = Path(dst)
        if ends_with_sep(dst) or local.is_dir():
            local.mkdir(parents=True, exist_ok=True)
            target = local / remote_basename(src)
        else:
            target = local
            target.parent.mkdir(parents=True, exist_ok=True)

        self._download(src, target, attrs.st_mode)
        return str(target)

    # ============================================================
    # Recursive transfer
    # ============================================================

    def rput(
        self,
        src: str,
        dst: str,
        include: Optional[str] = None,
        exclude: Optional[str] = None,
    ) -> TransferPlan:
        """
        Upload a local directory tree to ``dst/basename(src)``.

        Files are filtered by include then exclude; empty directories are
        always reproduced. Everything runs sequentially on this channel.

        Raises:
            TransferError: If src is not a directory or dst is an existing file
        """
        root = Path(src)
        if not root.is_dir():
            raise TransferError("src must be existing file or directory")

        dst = strip_trailing_sep(to_posix(dst))
        attrs = self._stat_or_none(dst)
        if attrs is not None and not stat.S_ISDIR(attrs.st_mode):
            raise TransferError("destination path must not be existing file")
        self.mkdir_p(dst)

        root_name = root.resolve().name
        plan = build_plan(walk_local(root), str(root), dst, root_name, include, exclude)
        target_root = posixpath.join(dst, root_name)
        self.mkdir_p(target_root)

        created: Set[str] = {target_root}
        for entry in plan.entries:
            target = posixpath.join(target_root, entry.rel_path)
            directory = target if entry.is_dir else posixpath.dirname(target)
            if directory not in created:
                self.mkdir_p(directory)
                created.add(directory)
            if not entry.is_dir:
                self._upload(root / entry.rel_path, target, _entry_mode(entry))

        logger.debug(f"rput {src} -> {target_root}: {len(plan.files)} file(s)")
        return plan

    def rget(
        self,
        src: str,
        dst: str,
        include: Optional[str] = None,
        exclude: Optional[str] = None,
    ) -> TransferPlan:
        """
        Download a remote directory tree to ``dst/basename(src)``.

        Raises:
            TransferError: If src is not a directory or dst is an existing file
        """
        src = strip_trailing_sep(to_posix(src))
        if not self.is_dir(src):
            raise TransferError("src must be existing file or directory")

        local_root = Path(dst)
        if local_root.exists() and not local_root.is_dir():
            raise TransferError("destination path must not be existing file")

        root_name = posixpath.basename(self.channel.realpath(src)) or remote_basename(src)
        plan = build_plan(walk_remote(self.channel, src), src, str(local_root), root_name, include, exclude)
        target_root = local_root / root_name
        target_root.mkdir(parents=True, exist_ok=True)

        for entry in plan.entries:
            target = target_root / entry.rel_path
            if entry.is_dir:
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            self._download(posixpath.join(src, entry.rel_path), target, _entry_mode(entry))

        logger.debug(f"rget {src} -> {target_root}: {len(plan.files)} file(s)")
        return plan


def _entry_mode(entry: TransferEntry) -> int:
    return 0o644 if entry.mode is None else entry.mode
