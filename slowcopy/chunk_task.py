"""
Module for reading one chunk of a source file with retry logic.
"""
import logging
import time
from pathlib import Path
from typing import BinaryIO, Optional

from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)

from .models import ChunkCompletion, ChunkState, CopySettings

logger = logging.getLogger(__name__)


class ChunkTask:
    """Performs the blocking read of one chunk's byte range.

    The task runs on an executor thread and never touches job state; it only
    fills ``chunk.buffer`` and ``chunk.bytes_read`` and returns a
    ChunkCompletion that the job processes under its lock.
    """

    def __init__(self, chunk: ChunkState, source_path: Path,
                 settings: Optional[CopySettings] = None):
        """Initialize the chunk task.

        Args:
            chunk: The chunk to fill; may carry a handle from its predecessor
            source_path: Path of the source file
            settings: Read block size and retry limits
        """
        self.chunk = chunk
        self.source_path = source_path
        self.settings = settings or CopySettings()

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception_type(OSError),
            stop=stop_after_attempt(self.settings.read_retry_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )

    def _read_block(self, handle: BinaryIO, offset: int, size: int) -> bytes:
        """Seek and read one bounded block, retrying transient errors.

        Args:
            handle: Open binary source handle
            offset: Absolute file offset to read from
            size: Maximum number of bytes to read

        Returns:
            The bytes read; shorter than ``size`` only at end-of-stream
        """
        for attempt in self._retrying():
            with attempt:
                handle.seek(offset)
                return handle.read(size)

    def run(self) -> ChunkCompletion:
        """Read the chunk's range and report the outcome exactly once.

        Returns:
            ChunkCompletion describing full success, a tail read or a failure
        """
        chunk = self.chunk
        chunk.bytes_read = 0
        chunk.buffer = bytearray(chunk.requested_size)
        chunk.started_at = time.monotonic()

        try:
            if chunk.source_handle is None:
                chunk.source_handle = open(self.source_path, 'rb')
        except OSError as e:
            logger.error(f"Error opening {self.source_path} for chunk @{chunk.position}: {e}")
            return ChunkCompletion(chunk.position, 0, success=False, error=str(e))

        view = memoryview(chunk.buffer)
        try:
            while chunk.bytes_read < chunk.requested_size:
                wanted = min(self.settings.read_block_size,
                             chunk.requested_size - chunk.bytes_read)
                data = self._read_block(chunk.source_handle,
                                        chunk.position + chunk.bytes_read, wanted)
                view[chunk.bytes_read:chunk.bytes_read + len(data)] = data
                chunk.bytes_read += len(data)
                if len(data) < wanted:
                    logger.debug(
                        f"End of {self.source_path} at {chunk.position + chunk.bytes_read}"
                    )
                    return ChunkCompletion(chunk.position, chunk.bytes_read,
                                           success=True, end_of_stream=True)
        except OSError as e:
            logger.error(
                f"Error reading {self.source_path} chunk @{chunk.position} "
                f"after {chunk.bytes_read} bytes: {e}"
            )
            return ChunkCompletion(chunk.position, chunk.bytes_read,
                                   success=False, error=str(e))
        finally:
            view.release()

        return ChunkCompletion(chunk.position, chunk.bytes_read, success=True)
