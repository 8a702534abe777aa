"""Tests for the depth-first tree walker."""

import os
from pathlib import Path

import pytest

from zfsrecompress.errors import WalkAbortedError
from zfsrecompress.state import REASON_INTERRUPT, REASON_WORKER_FAILURE, RunState
from zfsrecompress.walker import TreeWalker


class Collector:
    def __init__(self, on_item=None):
        self.items = []
        self.on_item = on_item

    async def __call__(self, item):
        self.items.append(item)
        if self.on_item is not None:
            self.on_item(len(self.items))

    @property
    def names(self):
        return [item.path.name for item in self.items]


def _touch(path: Path, text: str = "x"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.mark.asyncio
async def test_depth_first_lexical_order(temp_dir, logger):
    for rel in ["b.txt", "a/2.txt", "a/1.txt", "a/z/deep.txt", "c/only.txt", "0.txt"]:
        _touch(temp_dir / rel)

    collector = Collector()
    walker = TreeWalker(temp_dir, collector, RunState(), logger)
    await walker.walk()

    rel_paths = [str(item.path.relative_to(temp_dir)).replace(os.sep, "/") for item in collector.items]
    assert rel_paths == ["0.txt", "a/1.txt", "a/2.txt", "a/z/deep.txt", "b.txt", "c/only.txt"]
    assert walker.stats["files_found"] == 6
    assert walker.stats["dirs_scanned"] == 4


@pytest.mark.asyncio
async def test_items_carry_stat_snapshot(temp_dir, logger):
    _touch(temp_dir / "f.txt", "hello")

    collector = Collector()
    await TreeWalker(temp_dir, collector, RunState(), logger).walk()

    item = collector.items[0]
    assert item.stat.st_size == 5
    assert item.stat.st_ino == os.stat(temp_dir / "f.txt").st_ino


@pytest.mark.asyncio
@pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
async def test_symlinks_are_not_followed(temp_dir, logger):
    _touch(temp_dir / "real" / "file.txt")
    (temp_dir / "link.txt").symlink_to(temp_dir / "real" / "file.txt")
    (temp_dir / "linkdir").symlink_to(temp_dir / "real")

    collector = Collector()
    walker = TreeWalker(temp_dir, collector, RunState(), logger)
    await walker.walk()

    assert collector.names == ["file.txt"]
    assert walker.stats["symlinks_skipped"] == 2


@pytest.mark.asyncio
@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="FIFOs not supported")
async def test_special_files_are_skipped(temp_dir, logger):
    os.mkfifo(temp_dir / "pipe")
    _touch(temp_dir / "file.txt")

    collector = Collector()
    walker = TreeWalker(temp_dir, collector, RunState(), logger)
    await walker.walk()

    assert collector.names == ["file.txt"]
    assert walker.stats["special_files_skipped"] == 1


@pytest.mark.asyncio
@pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="root ignores directory permissions")
async def test_unreadable_directory_is_skipped(temp_dir, logger):
    _touch(temp_dir / "a" / "hidden.txt")
    _touch(temp_dir / "b" / "visible.txt")
    (temp_dir / "a").chmod(0o000)

    try:
        collector = Collector()
        walker = TreeWalker(temp_dir, collector, RunState(), logger)
        await walker.walk()
    finally:
        (temp_dir / "a").chmod(0o755)

    assert collector.names == ["visible.txt"]
    assert walker.stats["walk_errors"] == 1


@pytest.mark.asyncio
async def test_abort_before_walk(temp_dir, logger):
    _touch(temp_dir / "file.txt")
    run_state = RunState()
    run_state.request_abort()

    collector = Collector()
    with pytest.raises(WalkAbortedError) as exc_info:
        await TreeWalker(temp_dir, collector, run_state, logger).walk()

    assert exc_info.value.reason == REASON_INTERRUPT
    assert collector.items == []


@pytest.mark.asyncio
async def test_abort_mid_walk_stops_enqueueing(temp_dir, logger):
    for i in range(10):
        _touch(temp_dir / f"file{i}.txt")
    run_state = RunState()

    def abort_after_three(count):
        if count == 3:
            run_state.request_abort()

    collector = Collector(abort_after_three)
    with pytest.raises(WalkAbortedError):
        await TreeWalker(temp_dir, collector, run_state, logger).walk()

    assert len(collector.items) == 3


@pytest.mark.asyncio
async def test_worker_failure_stops_walk(temp_dir, logger):
    for i in range(5):
        _touch(temp_dir / f"file{i}.txt")
    run_state = RunState()

    collector = Collector(lambda count: run_state.mark_failed())
    with pytest.raises(WalkAbortedError) as exc_info:
        await TreeWalker(temp_dir, collector, run_state, logger).walk()

    assert exc_info.value.reason == REASON_WORKER_FAILURE
    assert len(collector.items) == 1


@pytest.mark.asyncio
async def test_excluded_directory_is_not_descended(temp_dir, logger):
    _touch(temp_dir / ".zfs-inplace-recompress-resume" / "ledger.sqlite3")
    _touch(temp_dir / "data.txt")

    collector = Collector()
    walker = TreeWalker(
        temp_dir, collector, RunState(), logger, exclude=[temp_dir / ".zfs-inplace-recompress-resume"]
    )
    await walker.walk()

    assert collector.names == ["data.txt"]
    assert walker.stats["excluded_skipped"] == 1


@pytest.mark.asyncio
async def test_root_may_be_a_single_file(temp_dir, logger):
    _touch(temp_dir / "only.txt")

    collector = Collector()
    await TreeWalker(temp_dir / "only.txt", collector, RunState(), logger).walk()

    assert collector.names == ["only.txt"]


@pytest.mark.asyncio
async def test_missing_root_raises(temp_dir, logger):
    with pytest.raises(FileNotFoundError):
        await TreeWalker(temp_dir / "nope", Collector(), RunState(), logger).walk()


@pytest.mark.asyncio
async def test_other_device_entries_are_skipped(temp_dir, logger, monkeypatch):
    from zfsrecompress import walker as walker_module

    _touch(temp_dir / "mnt" / "foreign.txt")
    _touch(temp_dir / "local.txt")

    real_classify = walker_module._classify

    def classify_mount_point(entry):
        # Report the "mnt" directory as living on another device
        result = real_classify(entry)
        if entry.name == "mnt":
            fields = tuple(result.stat)
            moved = os.stat_result(fields[:2] + (fields[2] + 1,) + fields[3:])
            return walker_module._Entry(result.path, result.kind, moved)
        return result

    monkeypatch.setattr(walker_module, "_classify", classify_mount_point)

    collector = Collector()
    walker = TreeWalker(temp_dir, collector, RunState(), logger)
    await walker.walk()

    assert collector.names == ["local.txt"]
    assert walker.stats["other_device_skipped"] == 1
