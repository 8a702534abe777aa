"""Pytest configuration and shared fixtures."""

import logging
import os
import stat
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add src directory to Python path to ensure tests use local source code
# instead of installed package
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def resume_dir():
    """A ledger location outside the tree being processed."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / ".zfs-inplace-recompress-resume"


@pytest.fixture
def write_file():
    """
    Write incompressible data and fsync it, so st_blocks reflects the real
    allocation and the compression heuristic never skips the file.
    """

    def _write(path: Path, size: int = 64 * 1024 + 123, data: bytes | None = None) -> bytes:
        if data is None:
            data = os.urandom(size)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        return data

    return _write


@pytest.fixture
def fake_stat():
    """Build a stat-like object with chosen allocation numbers."""

    def _fake(size=1000, blocks=2, block_size=512, inode=42, device=7, mtime_ns=1_600_000_000_000_000_000):
        return SimpleNamespace(
            st_mode=stat.S_IFREG | 0o644,
            st_size=size,
            st_blocks=blocks,
            st_blksize=block_size,
            st_ino=inode,
            st_dev=device,
            st_mtime_ns=mtime_ns,
        )

    return _fake


@pytest.fixture
def logger():
    return logging.getLogger("zfsrecompress.tests")
