"""
Module containing data models for the copy engine.
"""
import time
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

KIB = 1024
MIB = 1024 * KIB


@dataclass
class CopySettings:
    """Tunable parameters of a copy job."""
    initial_chunk_size: int = 64 * KIB
    min_chunk_size: int = 4096
    max_chunk_size: int = 64 * MIB
    target_chunk_seconds: float = 10.0
    read_block_size: int = 16 * KIB
    max_initial_chunks: int = 2
    read_retry_attempts: int = 3
    max_chunk_retries: int = 5
    sync_writes: bool = True
    poll_interval: float = 0.1

    def __post_init__(self):
        """Validate the settings."""
        for name in ("initial_chunk_size", "min_chunk_size", "max_chunk_size",
                     "read_block_size", "max_initial_chunks",
                     "read_retry_attempts"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.max_chunk_retries < 0:
            raise ValueError("max_chunk_retries cannot be negative")
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size cannot exceed max_chunk_size")
        if self.target_chunk_seconds <= 0:
            raise ValueError("target_chunk_seconds must be positive")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CopySettings":
        """Build settings from a config mapping, ignoring unknown keys.

        Args:
            data: Configuration values keyed by field name

        Returns:
            Validated CopySettings instance
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class CopyOutcome(Enum):
    """Final outcome of a copy job."""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ChunkState:
    """One outstanding byte range of a job."""
    position: int
    requested_size: int
    bytes_read: int = 0
    buffer: Optional[bytearray] = None
    source_handle: Optional[BinaryIO] = None
    started_at: float = field(default_factory=time.monotonic)
    attempt: int = 0

    def detach_handle(self) -> Optional[BinaryIO]:
        """Give up ownership of the source handle."""
        handle, self.source_handle = self.source_handle, None
        return handle

    def close_handle(self) -> None:
        handle = self.detach_handle()
        if handle is not None:
            handle.close()


@dataclass
class ChunkCompletion:
    """Completion report of a single chunk read."""
    position: int
    bytes_read: int
    success: bool
    end_of_stream: bool = False
    error: Optional[str] = None


@dataclass
class ChunkSizeEstimate:
    """Next chunk size and the hint the job should keep."""
    size: int
    hint: int


@dataclass
class JobState:
    """Checkpointable state of a copy job."""
    source: str
    destination: str
    total_size: int
    next_chunk_position: int
    bytes_copied: int
    chunk_size_hint: int
    chunks: List[Tuple[int, int]]  # (position, requested_size), ordered by position


@dataclass
class CopyResult:
    """Represents the result of copying a single file."""
    source: Path
    destination: Path
    outcome: CopyOutcome
    bytes_copied: int = 0
    total_size: Optional[int] = None
    resumed: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is not CopyOutcome.FAILED


@dataclass
class CopySummary:
    """Represents a summary of a copy operation."""
    source: Path
    destination: Path
    results: List[CopyResult] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.results)

    @property
    def completed(self) -> int:
        return sum(1 for r in self.results if r.outcome is CopyOutcome.COMPLETED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome is CopyOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.outcome is CopyOutcome.FAILED)
