"""Exception types raised while recompressing a tree."""


class RecompressError(Exception):
    """Base class for all errors raised by zfsrecompress."""


class MetadataError(RecompressError):
    """Stat information for a file is missing or lacks allocation fields."""


class ShortCopyError(RecompressError):
    """The in-place copy moved a different number of bytes than the file held."""

    def __init__(self, path, copied: int, expected: int):
        self.path = path
        self.copied = copied
        self.expected = expected
        super().__init__(f"copied {copied} bytes instead of {expected} for {path}")


class WalkAbortedError(RecompressError):
    """The tree walk stopped early because of an interrupt or a worker failure."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Aborted due to {reason}")


class LedgerError(RecompressError):
    """The resume ledger could not be opened or written."""
