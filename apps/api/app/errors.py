"""Error types raised by the ingest and combine pipeline."""

from typing import Optional


class PlateRunnerError(Exception):
    """Base class for all PlateRunner errors."""
    pass


class IngestError(PlateRunnerError):
    """Raised when a single uploaded archive cannot be turned into a print job.

    Scoped to one file: the rest of a batch keeps going.
    """

    def __init__(self, filename: str, message: str, entry: Optional[str] = None):
        self.filename = filename
        self.entry = entry
        super().__init__(f"Failed to parse {filename}: {message}")


class CombineError(PlateRunnerError):
    """Raised when the combine/package pass cannot produce an output archive."""
    pass


class MarkerNotFoundError(CombineError):
    """Raised when a G-code stream has no EXECUTABLE_BLOCK_END marker."""

    def __init__(self, message: str, job_name: Optional[str] = None):
        self.job_name = job_name
        super().__init__(message)


class EmptyQueueError(CombineError):
    """Raised when combine is requested with no jobs queued."""
    pass


class PackagingError(CombineError):
    """Raised when the output 3MF cannot be written."""
    pass
