"""Run configuration, built once from defaults and command-line overrides."""

from dataclasses import dataclass, field
from pathlib import Path

import psutil

from .logging import LOG_FORMATS

RESUME_DIR_NAME = ".zfs-inplace-recompress-resume"

# Formats that are already compressed, so rewriting them gains nothing
DEFAULT_IGNORED_EXTENSIONS: tuple[str, ...] = (
    # Images
    "jpg",
    "jpeg",
    "png",
    "gif",
    "webp",
    # Archives
    "zip",
    "gz",
    "bz2",
    "xz",
    "7z",
    "rar",
    # Video
    "mp4",
    "avi",
    "mkv",
    "flv",
    "webm",
    # Audio
    "mp3",
    "wav",
    "ogg",
    "flac",
    # Documents
    "pdf",
    "doc",
    "docx",
    "xls",
    "xlsx",
    "ppt",
    "pptx",
    "odt",
    "ods",
    "odp",
    "odg",
    "odf",
    "odc",
    "odm",
)

DEFAULT_COPY_CHUNK_SIZE = 1024 * 1024
DEFAULT_PROGRESS_INTERVAL = 30.0


def parse_extension_list(text: str) -> tuple[str, ...]:
    """
    Turn "jpg, .PNG,,gz" into ("jpg", "png", "gz").

    Leading dots and surrounding whitespace are stripped, case is folded,
    empty and repeated entries are dropped. Order is preserved.
    """
    extensions: list[str] = []
    for part in text.split(","):
        ext = part.strip().lstrip(".").lower()
        if ext and ext not in extensions:
            extensions.append(ext)
    return tuple(extensions)


def default_worker_count() -> int:
    """One worker per logical CPU."""
    return max(1, psutil.cpu_count(logical=True) or 1)


@dataclass(frozen=True)
class RecompressConfig:
    """Immutable settings for one run."""

    root_path: Path = Path(".")
    ignored_extensions: tuple[str, ...] = DEFAULT_IGNORED_EXTENSIONS
    resume: bool = True
    resume_dir: Path = Path(RESUME_DIR_NAME)
    workers: int = field(default_factory=default_worker_count)
    queue_size: int | None = None
    copy_chunk_size: int = DEFAULT_COPY_CHUNK_SIZE
    log_level: str = "INFO"
    log_format: str = "json"
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL

    def __post_init__(self):
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "root_path", Path(self.root_path))
        object.__setattr__(self, "resume_dir", Path(self.resume_dir))
        object.__setattr__(self, "ignored_extensions", parse_extension_list(",".join(self.ignored_extensions)))
        if self.queue_size is None:
            object.__setattr__(self, "queue_size", 2 * self.workers)

        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {self.queue_size}")
        if self.copy_chunk_size < 1:
            raise ValueError(f"copy_chunk_size must be >= 1, got {self.copy_chunk_size}")
        if self.progress_interval < 0:
            raise ValueError(f"progress_interval must be >= 0, got {self.progress_interval}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {self.log_format!r}")

    @property
    def ignored_suffixes(self) -> tuple[str, ...]:
        """Suffixes matched against the lowercased path, e.g. ".jpg"."""
        return tuple("." + ext for ext in self.ignored_extensions)

    @classmethod
    def from_overrides(
        cls,
        root_path: str | Path = ".",
        ignore: str | None = None,
        debug: bool = False,
        noresume: bool = False,
        workers: int | None = None,
        resume_dir: str | Path | None = None,
        log_level: str = "INFO",
        log_format: str = "json",
        **kwargs,
    ) -> "RecompressConfig":
        """
        Build a config from command-line style values.

        Args:
            root_path: Directory tree to process
            ignore: Comma separated extensions replacing the default list (None keeps defaults)
            debug: Force DEBUG logging
            noresume: Disable the resume ledger
            workers: Worker count (None = one per CPU)
            resume_dir: Location of the resume ledger (None = default in the working directory)
            log_level: Logging level when debug is off
            log_format: "json" or "text"
            **kwargs: Any other RecompressConfig field

        Returns:
            The frozen configuration
        """
        if workers is not None:
            kwargs["workers"] = workers
        if resume_dir is not None:
            kwargs["resume_dir"] = Path(resume_dir)
        if ignore is not None:
            kwargs["ignored_extensions"] = parse_extension_list(ignore)

        return cls(
            root_path=Path(root_path),
            resume=not noresume,
            log_level="DEBUG" if debug else log_level.upper(),
            log_format=log_format,
            **kwargs,
        )
