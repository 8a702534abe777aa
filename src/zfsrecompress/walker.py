"""Depth-first producer feeding regular files to the worker pool."""

import asyncio
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable

from .errors import WalkAbortedError
from .logging import log_with_context
from .metadata import WorkItem
from .state import RunState

FILE = "file"
DIRECTORY = "dir"
SYMLINK = "symlink"
SPECIAL = "special"


@dataclass(frozen=True)
class _Entry:
    path: Path
    kind: str
    stat: os.stat_result | None = None
    error: str | None = None


def _classify(entry: os.DirEntry) -> _Entry:
    path = Path(entry.path)
    if entry.is_symlink():
        return _Entry(path, SYMLINK)
    if entry.is_dir(follow_symlinks=False):
        kind = DIRECTORY
    elif entry.is_file(follow_symlinks=False):
        kind = FILE
    else:
        return _Entry(path, SPECIAL)
    try:
        return _Entry(path, kind, entry.stat(follow_symlinks=False))
    except OSError as e:
        return _Entry(path, kind, None, str(e))


def _list_directory(path: Path) -> list[_Entry]:
    """Read and lstat a directory in one executor hop, sorted by name."""
    with os.scandir(path) as it:
        entries = sorted(it, key=lambda e: e.name)
    return [_classify(entry) for entry in entries]


async def async_list_directory(path: Path) -> list[_Entry]:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _list_directory, path)


class TreeWalker:
    """
    Walks a tree depth-first in lexical order and submits regular files.

    The run state is polled before every entry; once it reports an abort or
    a worker failure the walk raises WalkAbortedError. Unreadable
    directories are logged and skipped. Entries on a different device than
    the root are not followed.
    """

    def __init__(
        self,
        root: str | Path,
        submit: Callable[[WorkItem], Awaitable[None]],
        run_state: RunState,
        logger: logging.Logger,
        exclude: Iterable[str | Path] = (),
    ):
        self.root = Path(root)
        self.submit = submit
        self.run_state = run_state
        self.logger = logger
        self.exclude = [Path(p) for p in exclude]

        self.root_device: int | None = None
        self._excluded_ids: set[tuple[int, int]] = set()
        self._warned_devices: set[int] = set()

        self.stats = {
            "dirs_scanned": 0,
            "files_found": 0,
            "symlinks_skipped": 0,
            "special_files_skipped": 0,
            "other_device_skipped": 0,
            "excluded_skipped": 0,
            "walk_errors": 0,
        }

    async def walk(self) -> None:
        """
        Walk the whole tree.

        Raises:
            FileNotFoundError: The root does not exist
            WalkAbortedError: The run state asked the walk to stop
        """
        loop = asyncio.get_running_loop()
        root_stat = await loop.run_in_executor(None, os.stat, self.root)
        self.root_device = root_stat.st_dev
        self._excluded_ids = await loop.run_in_executor(None, self._resolve_excludes)

        self._check_stop()
        if stat.S_ISREG(root_stat.st_mode):
            # A single file given as root is processed on its own
            await self._handle_file(_Entry(self.root, FILE, root_stat))
            return
        if not stat.S_ISDIR(root_stat.st_mode):
            self.stats["special_files_skipped"] += 1
            return

        # Stack of iterators over directory listings gives pre-order DFS without recursion limits
        root_listing = await self._list(self.root)
        if root_listing is None:
            return
        stack = [iter(root_listing)]
        while stack:
            try:
                entry = next(stack[-1])
            except StopIteration:
                stack.pop()
                continue

            self._check_stop()

            if entry.kind == SYMLINK:
                self.stats["symlinks_skipped"] += 1
                self.logger.debug(f"Skipping symlink: {entry.path}")
            elif entry.kind == SPECIAL:
                self.stats["special_files_skipped"] += 1
                self.logger.debug(f"Skipping special file: {entry.path}")
            elif entry.stat is None:
                if entry.kind == DIRECTORY:
                    self._walk_error(entry.path, entry.error)
                else:
                    # The worker turns the missing snapshot into a MetadataError
                    await self._handle_file(entry)
            elif not self._same_device(entry):
                continue
            elif entry.kind == DIRECTORY:
                if (entry.stat.st_dev, entry.stat.st_ino) in self._excluded_ids:
                    self.stats["excluded_skipped"] += 1
                    self.logger.debug(f"Skipping excluded directory: {entry.path}")
                    continue
                listing = await self._list(entry.path)
                if listing is not None:
                    stack.append(iter(listing))
            else:
                await self._handle_file(entry)

    async def _list(self, directory: Path) -> list[_Entry] | None:
        try:
            listing = await async_list_directory(directory)
        except OSError as e:
            self._walk_error(directory, str(e))
            return None
        self.stats["dirs_scanned"] += 1
        return listing

    async def _handle_file(self, entry: _Entry) -> None:
        self.stats["files_found"] += 1
        await self.submit(WorkItem(entry.path, entry.stat, entry.error))

    def _check_stop(self) -> None:
        reason = self.run_state.stop_reason
        if reason is not None:
            raise WalkAbortedError(reason)

    def _same_device(self, entry: _Entry) -> bool:
        device = entry.stat.st_dev
        if device == self.root_device:
            return True
        self.stats["other_device_skipped"] += 1
        if device not in self._warned_devices:
            self._warned_devices.add(device)
            log_with_context(
                self.logger,
                "warning",
                "Not crossing into another filesystem",
                {"path": str(entry.path), "device": device, "root_device": self.root_device},
            )
        return False

    def _walk_error(self, path: Path, error: str | None) -> None:
        self.stats["walk_errors"] += 1
        log_with_context(
            self.logger,
            "warning",
            "Error walking directory",
            {"directory": str(path), "error": error},
        )

    def _resolve_excludes(self) -> set[tuple[int, int]]:
        ids = set()
        for path in self.exclude:
            try:
                st = os.stat(path)
            except FileNotFoundError:
                continue
            ids.add((st.st_dev, st.st_ino))
        return ids
