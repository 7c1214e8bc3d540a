"""
Module for persisting and recovering the resumable state of copy jobs.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .models import JobState

logger = logging.getLogger(__name__)

CHECKPOINT_SUFFIX = "._chunks_"


def _as_int(value: Any) -> int:
    """Read a whole number that may have been written as a string."""
    if isinstance(value, bool):
        raise TypeError(f"expected a number, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected a whole number, got {value!r}")
    return int(value)


class CheckpointStore:
    """Reads and writes the checkpoint sidecar of a copy job.

    The sidecar lives in the destination directory and is named after the
    source file: ``<destination_dir>/<source name>._chunks_``.
    """

    def __init__(self, sync: bool = True):
        """Initialize the checkpoint store.

        Args:
            sync: Whether to fsync the checkpoint before moving it into place
        """
        self.sync = sync

    @staticmethod
    def checkpoint_path(destination_dir: Path, source_name: str) -> Path:
        return Path(destination_dir) / f"{Path(source_name).name}{CHECKPOINT_SUFFIX}"

    @staticmethod
    def to_dict(state: JobState) -> Dict[str, Any]:
        """Convert job state to the sidecar record layout."""
        return {
            'source': state.source,
            'destination': state.destination,
            'size': state.total_size,
            'nextChunkPosition': state.next_chunk_position,
            'bytesCopied': state.bytes_copied,
            'chunkSizeHint': state.chunk_size_hint,
            'chunks': [
                {'position': position, 'chunkSize': size}
                for position, size in sorted(state.chunks)
            ]
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> JobState:
        """Build job state from a sidecar record.

        Raises:
            ValueError, KeyError, TypeError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise TypeError("checkpoint record is not an object")

        total_size = _as_int(data['size'])
        next_position = _as_int(data['nextChunkPosition'])
        bytes_copied = _as_int(data['bytesCopied'])
        hint = _as_int(data.get('chunkSizeHint', 0))

        chunks = []
        for item in data['chunks']:
            if not isinstance(item, dict):
                raise TypeError("checkpoint chunk is not an object")
            chunks.append((_as_int(item['position']), _as_int(item['chunkSize'])))
        chunks.sort()

        if min(total_size, next_position, bytes_copied, hint) < 0:
            raise ValueError("negative value in checkpoint")
        if next_position > total_size or bytes_copied > total_size:
            raise ValueError("progress beyond file size")

        end = 0
        for position, size in chunks:
            if size <= 0:
                raise ValueError(f"empty chunk at {position}")
            if position < end:
                raise ValueError(f"overlapping chunk at {position}")
            end = position + size
            if end > next_position:
                raise ValueError(f"chunk at {position} beyond next chunk position")

        outstanding = sum(size for _, size in chunks)
        if bytes_copied + outstanding + (total_size - next_position) != total_size:
            raise ValueError("chunks do not account for the remaining bytes")

        return JobState(
            source=str(data['source']),
            destination=str(data['destination']),
            total_size=total_size,
            next_chunk_position=next_position,
            bytes_copied=bytes_copied,
            chunk_size_hint=hint,
            chunks=chunks
        )

    def save(self, state: JobState, destination_dir: Path) -> Path:
        """Write the checkpoint for a job, replacing any previous one.

        Args:
            state: Snapshot of the job
            destination_dir: Directory holding the destination file

        Returns:
            Path of the written checkpoint
        """
        path = self.checkpoint_path(destination_dir, state.source)
        tmp_path = path.with_name(path.name + ".tmp")

        with open(tmp_path, 'w') as f:
            json.dump(self.to_dict(state), f, indent=2)
            f.flush()
            if self.sync:
                os.fsync(f.fileno())
        os.replace(tmp_path, path)

        logger.debug(
            f"Saved checkpoint {path}: {len(state.chunks)} chunks outstanding, "
            f"{state.bytes_copied}/{state.total_size} bytes copied"
        )
        return path

    def load(self, destination_dir: Path, source_name: str) -> Optional[JobState]:
        """Load and consume the checkpoint for a source file.

        A checkpoint that cannot be parsed is discarded so the copy starts
        over instead of failing.

        Args:
            destination_dir: Directory holding the destination file
            source_name: Source path or base name

        Returns:
            JobState if a valid checkpoint was found, None otherwise
        """
        path = self.checkpoint_path(destination_dir, source_name)
        if not path.exists():
            return None

        try:
            with open(path, 'r') as f:
                state = self.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Failed to load checkpoint {path}, restarting from beginning: {e}")
            return None

        for position, size in state.chunks:
            logger.info(f"Chunk info loaded: position {position:,} size {size:,}")

        try:
            path.unlink()
        except OSError as e:
            logger.warning(f"Failed to remove checkpoint {path} after loading: {e}")
        return state

    def delete(self, destination_dir: Path, source_name: str) -> None:
        path = self.checkpoint_path(destination_dir, source_name)
        try:
            path.unlink()
            logger.debug(f"Deleted checkpoint {path}")
        except FileNotFoundError:
            pass
