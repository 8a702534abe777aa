"""Rewrite a single file onto itself so the filesystem re-evaluates compression."""

import asyncio
import enum
import logging
import os
import stat
from pathlib import Path

import aiofiles
import aiofiles.os

from .config import RecompressConfig
from .errors import MetadataError, ShortCopyError
from .heuristic import should_skip
from .ledger import AsyncLedger
from .logging import log_with_context
from .metadata import FileMetadata, WorkItem


class ProcessOutcome(enum.Enum):
    REWRITTEN = "files_rewritten"
    SKIPPED_IGNORED = "skipped_ignored"
    SKIPPED_COMPRESSED = "skipped_compressed"
    SKIPPED_HANDLED = "skipped_handled"


async def restore_times(path: Path, mtime_ns: int) -> None:
    """Set atime and mtime to the original modification time, nanosecond exact."""
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, lambda: os.utime(path, ns=(mtime_ns, mtime_ns)))


class FileProcessor:
    """
    Apply the skip rules to one WorkItem and rewrite it in place.

    Steps run strictly in order and stop at the first skip:
    ignored suffix, metadata, compression heuristic, ledger, rewrite,
    size check, timestamp restore, ledger commit. Failures propagate to the
    caller and leave the ledger untouched, so a later run retries the file.
    """

    def __init__(self, config: RecompressConfig, ledger: AsyncLedger, logger: logging.Logger):
        self.config = config
        self.ledger = ledger
        self.logger = logger
        self._suffixes = config.ignored_suffixes
        self._chunk_size = config.copy_chunk_size

    def is_ignored(self, path: Path) -> bool:
        """Naive case-insensitive suffix match on the whole path."""
        return str(path).lower().endswith(self._suffixes)

    async def process(self, item: WorkItem) -> ProcessOutcome:
        """
        Process one file.

        Args:
            item: The file and its stat snapshot from discovery

        Returns:
            What happened to the file

        Raises:
            MetadataError: Stat snapshot missing or unusable, or the path is no
                longer a regular file
            ShortCopyError: Fewer/more bytes copied than the recorded size
            OSError: Open, copy or utime failures
        """
        path = item.path

        if self.is_ignored(path):
            self.logger.debug(f"Skipping ignored file {path}")
            return ProcessOutcome.SKIPPED_IGNORED

        meta = await self._current_metadata(item)

        if should_skip(meta.size, meta.blocks, meta.block_size):
            self.logger.debug(f"Skipping already compressed or sparse file {path}")
            return ProcessOutcome.SKIPPED_COMPRESSED

        if await self.ledger.is_handled(meta.device, meta.inode):
            self.logger.debug(f"Skipping handled file {path}")
            return ProcessOutcome.SKIPPED_HANDLED

        log_with_context(
            self.logger,
            "debug",
            "Processing file",
            {"file": str(path), "size": meta.size, "allocated_bytes": meta.allocated_bytes},
        )

        copied = await self._copy_onto_itself(path)
        if copied != meta.size:
            raise ShortCopyError(path, copied, meta.size)

        await restore_times(path, meta.mtime_ns)

        await self.ledger.put(meta.device, meta.inode)

        return ProcessOutcome.REWRITTEN

    async def _copy_onto_itself(self, path: Path) -> int:
        """Stream the file's bytes back over themselves; no truncation, no create."""
        copied = 0
        async with aiofiles.open(path, "rb") as source, aiofiles.open(path, "r+b") as target:
            while True:
                chunk = await source.read(self._chunk_size)
                if not chunk:
                    break
                await target.write(chunk)
                copied += len(chunk)
        return copied

    async def _current_metadata(self, item: WorkItem) -> FileMetadata:
        """lstat the file at processing time; the discovery snapshot may be stale."""
        # Discovery must still have produced a usable snapshot
        item.metadata()
        current = await aiofiles.os.stat(item.path, follow_symlinks=False)
        if not stat.S_ISREG(current.st_mode):
            raise MetadataError(f"{item.path} is no longer a regular file")
        return FileMetadata.from_stat(current)
