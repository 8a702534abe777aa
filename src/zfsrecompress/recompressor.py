"""Orchestrates a full in-place recompression run over a directory tree."""

import asyncio
import time
from pathlib import Path

import aiofiles.os
import psutil

from . import __version__
from .cancel import CancellationController
from .config import RecompressConfig
from .errors import WalkAbortedError
from .ledger import AsyncLedger, open_ledger
from .logging import log_with_context, setup_logging
from .pool import WorkerPool
from .processor import FileProcessor
from .state import RunState
from .walker import TreeWalker

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

# Pseudo filesystems where rewriting "files" is meaningless or harmful
DANGEROUS_PATHS = {"/proc", "/sys", "/dev", "/run", "/var/run"}


def get_memory_usage_mb() -> float:
    """Get current memory usage in MB."""
    return psutil.Process().memory_info().rss / 1024 / 1024


class InplaceRecompressor:
    """
    Rewrites every eligible regular file under a root so the filesystem
    compresses it with its current settings.

    One walker produces WorkItems into a bounded queue drained by a fixed
    pool of workers. Completed inodes go into the resume ledger, which is
    deleted only after a clean run and kept otherwise so the next run can
    skip finished files.
    """

    def __init__(self, config: RecompressConfig):
        """
        Initialize the recompressor.

        Args:
            config: Run configuration

        Raises:
            ValueError: If the root is inside a pseudo filesystem
        """
        root_path = config.root_path
        if not root_path.is_absolute():
            root_path = root_path.resolve()

        root_str = str(root_path)
        for dangerous in DANGEROUS_PATHS:
            if root_str == dangerous or root_str.startswith(dangerous + "/"):
                raise ValueError(f"Refusing to rewrite files under pseudo filesystem '{dangerous}': {root_path}")

        self.config = config
        self.root_path = root_path
        self.resume_dir = config.resume_dir if config.resume_dir.is_absolute() else config.resume_dir.resolve()
        self.run_state = RunState()
        self.logger = setup_logging("zfsrecompress", config.log_level, config.log_format)
        self.cancellation = CancellationController(self.run_state, self.logger)

        self.pool: WorkerPool | None = None
        self.walker: TreeWalker | None = None
        self.start_time = time.time()
        self.progress_interval = config.progress_interval

    def _collect_stats(self) -> dict:
        stats: dict = {}
        if self.walker is not None:
            stats.update(self.walker.stats)
        if self.pool is not None:
            stats.update(self.pool.stats)
        return stats

    async def _background_progress_reporter(self) -> None:
        """Log a progress line every progress_interval seconds until cancelled."""
        last_done = 0
        stalled_intervals = 0
        while True:
            await asyncio.sleep(self.progress_interval)

            stats = self._collect_stats()
            elapsed = time.time() - self.start_time
            done = sum(
                stats.get(key, 0)
                for key in ("files_rewritten", "skipped_ignored", "skipped_compressed", "skipped_handled", "errors")
            )

            progress_data = {
                "elapsed_seconds": round(elapsed, 1),
                "files_found": stats.get("files_found", 0),
                "files_rewritten": stats.get("files_rewritten", 0),
                "files_skipped": done - stats.get("files_rewritten", 0) - stats.get("errors", 0),
                "errors": stats.get("errors", 0),
                "walk_errors": stats.get("walk_errors", 0),
                "files_per_second": round(done / elapsed, 1) if elapsed > 0 else 0.0,
                "mb_rewritten": round(stats.get("bytes_rewritten", 0) / (1024 * 1024), 1),
                "memory_mb": round(get_memory_usage_mb(), 1),
            }
            if self.pool is not None:
                progress_data["queue_depth"] = self.pool.queue.qsize()
                progress_data["active_workers"] = self.pool.active_workers
            if self.run_state.abort_requested:
                progress_data["aborting"] = True

            log_with_context(self.logger, "info", "Progress update", progress_data)

            # Workers can sit on one huge file for a long time; say so instead of looking hung
            if done == last_done:
                stalled_intervals += 1
                if stalled_intervals >= 2:
                    log_with_context(
                        self.logger,
                        "warning",
                        f"No files completed in the last {stalled_intervals * self.progress_interval:.0f} seconds",
                        {"stuck_intervals": stalled_intervals, "hint": "Large files or a slow disk can cause this."},
                    )
            else:
                stalled_intervals = 0
            last_done = done

    async def run(self) -> dict:
        """
        Run the whole pipeline: walk, rewrite, drain, then keep or discard the ledger.

        Returns:
            Dictionary with run statistics, including "clean" and "exit_code"

        Raises:
            FileNotFoundError: If the root path does not exist
            LedgerError: If resumption is enabled and the ledger cannot be opened
        """
        self.start_time = time.time()
        config = self.config

        log_with_context(
            self.logger,
            "info",
            "Starting in-place recompression",
            {
                "version": __version__,
                "root_path": str(self.root_path),
                "workers": config.workers,
                "queue_size": config.queue_size,
                "resume": config.resume,
                "resume_dir": str(self.resume_dir) if config.resume else None,
                "ignored_extensions": ",".join(config.ignored_extensions),
                "progress_interval_seconds": self.progress_interval,
            },
        )

        if not await aiofiles.os.path.exists(self.root_path):
            error_msg = f"Root path does not exist: {self.root_path}"
            log_with_context(self.logger, "error", error_msg, {"root_path": str(self.root_path)})
            raise FileNotFoundError(error_msg)

        loop = asyncio.get_running_loop()
        ledger = AsyncLedger(await loop.run_in_executor(None, open_ledger, config.resume, self.resume_dir))
        if ledger.enabled:
            previously_handled = await loop.run_in_executor(None, ledger.ledger.count)
            if previously_handled:
                log_with_context(
                    self.logger,
                    "info",
                    "Resuming from previous run",
                    {"resume_dir": str(self.resume_dir), "handled_inodes": previously_handled},
                )

        processor = FileProcessor(config, ledger, self.logger)
        self.pool = WorkerPool(processor, self.run_state, config.workers, config.queue_size, self.logger)
        self.walker = TreeWalker(
            self.root_path,
            self.pool.submit,
            self.run_state,
            self.logger,
            exclude=[self.resume_dir] if ledger.enabled else [],
        )

        walk_aborted: WalkAbortedError | None = None
        progress_task = None
        try:
            self.pool.start()
            self.cancellation.install()
            if self.progress_interval > 0:
                progress_task = asyncio.create_task(self._background_progress_reporter())
            try:
                await self.walker.walk()
            except WalkAbortedError as e:
                walk_aborted = e
                log_with_context(self.logger, "warning", str(e), {"reason": e.reason})
            finally:
                # Everything already queued is processed before we go on
                await self.pool.close()
        finally:
            self.cancellation.uninstall()
            if progress_task is not None:
                progress_task.cancel()
                try:
                    await progress_task
                except asyncio.CancelledError:
                    pass  # Expected
            handled_inodes = await loop.run_in_executor(None, ledger.ledger.count) if ledger.enabled else 0
            await ledger.close()

        stats = self._collect_stats()
        clean = (
            walk_aborted is None
            and stats["walk_errors"] == 0
            and not self.run_state.any_worker_failed
            and not self.run_state.abort_requested
        )

        if clean:
            if ledger.enabled:
                await ledger.discard()
                self.logger.debug(f"Removed resume ledger {self.resume_dir}")
            exit_code = EXIT_OK
        else:
            if ledger.enabled:
                log_with_context(
                    self.logger,
                    "info",
                    "Keeping resume ledger for the next run",
                    {"resume_dir": str(self.resume_dir), "handled_inodes": handled_inodes},
                )
            if self.run_state.any_worker_failed or stats["walk_errors"]:
                exit_code = EXIT_FAILURE
            else:
                exit_code = EXIT_INTERRUPTED

        duration = time.time() - self.start_time
        final_stats = {
            "duration_seconds": round(duration, 2),
            **stats,
            "files_per_second": round(stats["files_queued"] / duration, 2) if duration > 0 else 0.0,
            "mb_rewritten": round(stats["bytes_rewritten"] / (1024 * 1024), 2),
            "peak_memory_mb": round(get_memory_usage_mb(), 1),
            "aborted": walk_aborted.reason if walk_aborted else None,
            "clean": clean,
            "exit_code": exit_code,
        }

        log_with_context(
            self.logger,
            "info" if clean else "warning",
            "Recompression completed" if clean else "Recompression finished with problems",
            final_stats,
        )

        return final_stats


async def async_main(
    path: str | Path = ".",
    ignore: str | None = None,
    debug: bool = False,
    noresume: bool = False,
    workers: int | None = None,
    resume_dir: str | Path | None = None,
    log_level: str = "INFO",
    log_format: str = "json",
) -> dict:
    """
    Async entry point for the recompressor.

    Args:
        path: Root of the tree to process
        ignore: Comma separated extensions to skip (None = built-in list)
        debug: Verbose per-file logging
        noresume: Don't create or use the resume ledger
        workers: Worker count (None = one per CPU)
        resume_dir: Resume ledger location (None = .zfs-inplace-recompress-resume in the working directory)
        log_level: Logging level when debug is off
        log_format: "json" or "text"

    Returns:
        Run statistics
    """
    config = RecompressConfig.from_overrides(
        root_path=path,
        ignore=ignore,
        debug=debug,
        noresume=noresume,
        workers=workers,
        resume_dir=resume_dir,
        log_level=log_level,
        log_format=log_format,
    )
    return await InplaceRecompressor(config).run()
