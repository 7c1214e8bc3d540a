"""
Exceptions raised by the copy engine.
"""
from typing import Any, Dict, Optional


class SlowCopyError(Exception):
    """Base exception for all copy operations."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class SourceOpenError(SlowCopyError):
    """Raised when the source file cannot be opened or stat'd."""

    pass


class DestinationError(SlowCopyError):
    """Raised when the destination directory cannot be used."""

    pass


class DestinationWriteError(SlowCopyError):
    """Raised when writing chunk data to the destination fails."""

    pass


class ChunkRetryExhaustedError(SlowCopyError):
    """Raised when a byte range keeps failing to read."""

    pass


class SourceTruncatedError(SlowCopyError):
    """Raised when the source ends before its recorded size."""

    pass


class CopyInterrupted(SlowCopyError):
    """Raised after a job saved its checkpoint in response to a signal."""

    def __init__(self, signum: int, details: Optional[Dict[str, Any]] = None):
        self.signum = signum
        super().__init__(f"Copy interrupted by signal {signum}", details)

    @property
    def exit_code(self) -> int:
        return 128 + self.signum
