"""
Error taxonomy for backfill runs.

Fatal errors (StoreError, FormatError, JournalIOError) abort the run.
ItemError subclasses are per-candidate: the worker pool logs and skips them,
and the candidate is picked up again on the next run.
"""


class CratefillError(Exception):
    """Base class for all backfill errors."""
    pass


class StoreError(CratefillError):
    """Raised when the primary store cannot be queried or updated."""
    pass


class FormatError(CratefillError):
    """Raised when a journal row is malformed."""

    def __init__(self, message: str, line: int = 0):
        if line:
            message = f"line {line}: {message}"
        super().__init__(message)
        self.line = line


class JournalIOError(CratefillError):
    """Raised when the journal cannot be opened, appended to, or read."""
    pass


class ItemError(CratefillError):
    """Per-candidate failure. Never journaled, retried on the next run."""
    pass


class ArtifactNotFound(ItemError):
    pass


class ArtifactTooLarge(ItemError):
    pass


class ArtifactParseError(ItemError):
    pass
