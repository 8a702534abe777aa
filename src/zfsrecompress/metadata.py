"""Stat snapshots captured while walking the tree."""

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import MetadataError

# Fields a POSIX stat_result must carry for allocation-aware processing
_REQUIRED_FIELDS = ("st_size", "st_blocks", "st_blksize", "st_ino", "st_dev", "st_mtime_ns")


@dataclass(frozen=True)
class FileMetadata:
    """The subset of stat information the processor relies on."""

    size: int
    blocks: int
    block_size: int
    inode: int
    device: int
    mtime_ns: int

    @property
    def allocated_bytes(self) -> int:
        return self.block_size * self.blocks

    @classmethod
    def from_stat(cls, stat: os.stat_result | None) -> "FileMetadata":
        """
        Extract allocation metadata from a stat result.

        Only POSIX stat results are supported; Windows results have no
        st_blocks/st_blksize and are rejected.

        Raises:
            MetadataError: If the snapshot is missing or lacks a required field
        """
        if stat is None:
            raise MetadataError("no stat information captured")

        missing = [name for name in _REQUIRED_FIELDS if not hasattr(stat, name)]
        if missing:
            raise MetadataError(f"unsupported stat structure {type(stat).__name__}: missing {', '.join(missing)}")

        return cls(
            size=stat.st_size,
            blocks=stat.st_blocks,
            block_size=stat.st_blksize,
            inode=stat.st_ino,
            device=stat.st_dev,
            mtime_ns=stat.st_mtime_ns,
        )


@dataclass(frozen=True)
class WorkItem:
    """A regular file discovered by the walker, queued for one worker."""

    path: Path
    stat: os.stat_result | None
    stat_error: str | None = None

    def metadata(self) -> FileMetadata:
        if self.stat is None and self.stat_error:
            raise MetadataError(f"stat failed for {self.path}: {self.stat_error}")
        return FileMetadata.from_stat(self.stat)
