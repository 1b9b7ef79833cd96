"""
Directory walkers producing TransferPlan entries

Symbolic links are skipped on both sides. A directory is listed as an entry
only when it has no children at all, parents of files are created on demand.
"""
import os
import posixpath
import stat
from pathlib import Path
from typing import Iterator, List, Optional

from ...core.interfaces import DataChannel
from .filters import PathFilter
from .models import TransferEntry, TransferPlan


def walk_local(root: Path, rel: str = "") -> Iterator[TransferEntry]:
    """Yield files and empty directories under root"""
    current = root / rel if rel else root
    with os.scandir(current) as it:
        children = sorted(it, key=lambda e: e.name)

    if not children and rel:
        yield TransferEntry(rel_path=rel, is_dir=True)
        return

    for entry in children:
        child_rel = f"{rel}/{entry.name}" if rel else entry.name
        if entry.is_symlink():
            continue
        if entry.is_dir(follow_symlinks=False):
            yield from walk_local(root, child_rel)
        elif entry.is_file(follow_symlinks=False):
            mode = entry.stat(follow_symlinks=False).st_mode
            yield TransferEntry(rel_path=child_rel, mode=stat.S_IMODE(mode))


def walk_remote(channel: DataChannel, root: str, rel: str = "") -> Iterator[TransferEntry]:
    """Yield files and empty directories under a remote root"""
    current = posixpath.join(root, rel) if rel else root
    names: List[str] = sorted(channel.readdir(current))

    if not names and rel:
        yield TransferEntry(rel_path=rel, is_dir=True)
        return

    for name in names:
        child_rel = f"{rel}/{name}" if rel else name
        attrs = channel.lstat(posixpath.join(root, child_rel))
        if stat.S_ISLNK(attrs.st_mode):
            continue
        if stat.S_ISDIR(attrs.st_mode):
            yield from walk_remote(channel, root, child_rel)
        elif stat.S_ISREG(attrs.st_mode):
            yield TransferEntry(rel_path=child_rel, mode=stat.S_IMODE(attrs.st_mode))


def build_plan(
    entries: Iterator[TransferEntry],
    src_root: str,
    dst_root: str,
    root_name: str,
    include: Optional[str] = None,
    exclude: Optional[str] = None,
) -> TransferPlan:
    """Collect walked entries, filtering files (never empty directories)"""
    plan = TransferPlan(
        src_root=src_root,
        dst_root=dst_root,
        root_name=root_name,
        include=include,
        exclude=exclude,
    )
    path_filter = PathFilter(include, exclude)
    if path_filter.is_empty:
        plan.entries.extend(entries)
        return plan

    for entry in entries:
        if entry.is_dir or path_filter.accepts(plan.filter_path(entry.rel_path)):
            plan.entries.append(entry)
    return plan
