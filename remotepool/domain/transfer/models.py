"""
Transfer data models
"""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class TransferEntry:
    """One walked source entry, path relative to the source root (posix)"""
    rel_path: str
    is_dir: bool = False
    mode: Optional[int] = None


@dataclass
class TransferPlan:
    """
    What one recursive transfer moves.

    ``entries`` holds the filtered files plus every empty source directory.
    The tree lands at ``dst_root/root_name``.
    """
    src_root: str
    dst_root: str
    root_name: str
    include: Optional[str] = None
    exclude: Optional[str] = None
    entries: List[TransferEntry] = field(default_factory=list)

    @property
    def files(self) -> List[TransferEntry]:
        return [e for e in self.entries if not e.is_dir]

    @property
    def dirs(self) -> List[TransferEntry]:
        return [e for e in self.entries if e.is_dir]

    def filter_path(self, rel_path: str) -> str:
        """Path the include / exclude globs are matched against"""
        return f"{self.root_name}/{rel_path}" if rel_path else self.root_name
