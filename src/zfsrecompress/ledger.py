"""Resume ledger: a durable record of inodes that have already been rewritten."""

import asyncio
import shutil
import sqlite3
import struct
import threading
from pathlib import Path

from .errors import LedgerError

HANDLED = "handled"
DB_FILENAME = "ledger.sqlite3"


def inode_key(inode: int) -> bytes:
    """8-byte little-endian encoding of an inode number."""
    return struct.pack("<Q", inode)


def device_key(device: int) -> bytes:
    return struct.pack("<Q", device)


class SqliteLedger:
    """
    Ledger stored as a SQLite database inside its own directory.

    Rows are keyed by (device, inode) so a tree that crosses a mount point
    cannot confuse two files that share an inode number. One connection is
    shared by all workers and guarded by a lock.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._lock = threading.Lock()
        self._closed = False
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self.directory / DB_FILENAME,
                check_same_thread=False,
                isolation_level=None,
            )
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = FULL")
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS handled (
                    device BLOB NOT NULL,
                    inode BLOB NOT NULL,
                    record TEXT NOT NULL,
                    PRIMARY KEY (device, inode)
                ) WITHOUT ROWID
                """
            )
        except (OSError, sqlite3.Error) as e:
            raise LedgerError(f"Failed to open resume ledger at {self.directory}: {e}") from e

    def get(self, device: int, inode: int) -> str | None:
        """Return the completion record for an inode, or None."""
        with self._lock:
            self._check_open()
            try:
                row = self._conn.execute(
                    "SELECT record FROM handled WHERE device = ? AND inode = ?",
                    (device_key(device), inode_key(inode)),
                ).fetchone()
            except sqlite3.Error as e:
                raise LedgerError(f"Ledger lookup failed: {e}") from e
        return row[0] if row else None

    def put(self, device: int, inode: int, record: str = HANDLED) -> None:
        """Durably record an inode as done. Existing records are left untouched."""
        with self._lock:
            self._check_open()
            try:
                self._conn.execute(
                    "INSERT OR IGNORE INTO handled (device, inode, record) VALUES (?, ?, ?)",
                    (device_key(device), inode_key(inode), record),
                )
            except sqlite3.Error as e:
                raise LedgerError(f"Ledger write failed: {e}") from e

    def is_handled(self, device: int, inode: int) -> bool:
        return self.get(device, inode) == HANDLED

    def count(self) -> int:
        with self._lock:
            self._check_open()
            return self._conn.execute("SELECT COUNT(*) FROM handled").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._closed = True
                self._conn.close()

    def discard(self) -> None:
        """Close and delete all ledger state."""
        self.close()
        if self.directory.exists():
            shutil.rmtree(self.directory)

    def _check_open(self) -> None:
        if self._closed:
            raise LedgerError("Ledger is closed")


class NullLedger:
    """Stand-in used with --noresume: remembers nothing, every file is processed."""

    def get(self, device: int, inode: int) -> str | None:
        return None

    def put(self, device: int, inode: int, record: str = HANDLED) -> None:
        pass

    def is_handled(self, device: int, inode: int) -> bool:
        return False

    def count(self) -> int:
        return 0

    def close(self) -> None:
        pass

    def discard(self) -> None:
        pass


class AsyncLedger:
    """Runs ledger calls in the default executor so workers never block the loop."""

    def __init__(self, ledger: SqliteLedger | NullLedger):
        self.ledger = ledger

    @property
    def enabled(self) -> bool:
        return not isinstance(self.ledger, NullLedger)

    async def _call(self, func, *args):
        if not self.enabled:
            return func(*args)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def get(self, device: int, inode: int) -> str | None:
        return await self._call(self.ledger.get, device, inode)

    async def is_handled(self, device: int, inode: int) -> bool:
        return await self._call(self.ledger.is_handled, device, inode)

    async def put(self, device: int, inode: int, record: str = HANDLED) -> None:
        await self._call(self.ledger.put, device, inode, record)

    async def close(self) -> None:
        await self._call(self.ledger.close)

    async def discard(self) -> None:
        await self._call(self.ledger.discard)


def open_ledger(resume: bool, directory: str | Path) -> SqliteLedger | NullLedger:
    """Open the on-disk ledger, or a NullLedger when resumption is disabled."""
    if not resume:
        return NullLedger()
    return SqliteLedger(directory)
