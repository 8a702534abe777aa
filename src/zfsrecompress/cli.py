"""Command-line interface for zfs-inplace-recompress."""

import argparse
import asyncio
import os
import sys

from . import __version__
from .config import DEFAULT_IGNORED_EXTENSIONS, RESUME_DIR_NAME
from .logging import LOG_FORMATS
from .recompressor import EXIT_FAILURE, EXIT_INTERRUPTED, async_main


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="zfs-inplace-recompress",
        description="Rewrite every file under a directory in place so the filesystem recompresses it",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Root of the tree to process",
    )

    parser.add_argument(
        "--ignore",
        type=str,
        default=os.getenv("ZFSRECOMPRESS_IGNORE", ",".join(DEFAULT_IGNORED_EXTENSIONS)),
        help="Ignore files with these extensions (comma separated)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=_env_flag("ZFSRECOMPRESS_DEBUG"),
        help="Debug mode: log every file decision",
    )

    parser.add_argument(
        "--noresume",
        action="store_true",
        default=_env_flag("ZFSRECOMPRESS_NORESUME"),
        help="Don't create or use the resume database",
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=int(os.getenv("ZFSRECOMPRESS_WORKERS", "0") or "0") or None,
        help="Concurrent file workers (default: one per CPU)",
    )

    parser.add_argument(
        "--resume-dir",
        type=str,
        default=os.getenv("ZFSRECOMPRESS_RESUME_DIR", RESUME_DIR_NAME),
        help="Where the resume database lives",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("ZFSRECOMPRESS_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (--debug forces DEBUG)",
    )

    parser.add_argument(
        "--log-format",
        type=str,
        default=os.getenv("ZFSRECOMPRESS_LOG_FORMAT", "json"),
        choices=list(LOG_FORMATS),
        help="Log line format",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"zfs-inplace-recompress {__version__}",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    try:
        stats = asyncio.run(
            async_main(
                path=args.path,
                ignore=args.ignore,
                debug=args.debug,
                noresume=args.noresume,
                workers=args.workers,
                resume_dir=args.resume_dir,
                log_level=args.log_level,
                log_format=args.log_format,
            )
        )
        sys.exit(stats["exit_code"])

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
