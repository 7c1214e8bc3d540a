"""
Module for copying a single file as a chain of resumable chunks.
"""
import logging
import os
import queue
import signal
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .checkpoint import CheckpointStore
from .chunk_task import ChunkTask
from .estimator import estimate_next_chunk_size
from .exceptions import (
    ChunkRetryExhaustedError,
    CopyInterrupted,
    DestinationWriteError,
    SourceOpenError,
    SourceTruncatedError
)
from .formatting import comma_number, format_progress
from .models import ChunkState, CopyOutcome, CopySettings, JobState

logger = logging.getLogger(__name__)


class CopyJob:
    """Owns the copy state of one file.

    All mutable state (the outstanding chunk table, ``bytes_copied``,
    ``next_chunk_position``, the hint and the message list) is guarded by
    ``_lock``. Chunk reads run on the job's executor without the lock; their
    completions come back through ``_completions`` and are applied by
    ``on_chunk_complete``.
    """

    def __init__(self, source: Path, destination_dir: Path, total_size: int,
                 settings: Optional[CopySettings] = None,
                 store: Optional[CheckpointStore] = None,
                 token: Optional[CancellationToken] = None,
                 state: Optional[JobState] = None,
                 overwrite: bool = False,
                 on_progress: Optional[Callable[[str], None]] = None):
        """Initialize the copy job.

        Args:
            source: Source file path
            destination_dir: Directory receiving the copy
            total_size: Size of the source in bytes
            settings: Chunking and retry settings
            store: Checkpoint store
            token: Cancellation token polled by the run loop
            state: Checkpointed state to resume from
            overwrite: Whether an existing destination is a stale partial copy
            on_progress: Consumer of progress lines; logs them by default
        """
        self.source = Path(source)
        self.destination_dir = Path(destination_dir)
        self.destination = self.destination_dir / self.source.name
        self.settings = settings or CopySettings()
        self.store = store or CheckpointStore(sync=self.settings.sync_writes)
        self.token = token or CancellationToken()
        self.on_progress = on_progress or logger.info
        self.overwrite = overwrite

        self.total_size = total_size
        self.bytes_copied = 0
        self.next_chunk_position = 0
        self.chunk_size_hint = self.settings.initial_chunk_size
        self.outstanding: Dict[int, ChunkState] = {}
        self.resumed = state is not None

        self._lock = threading.Lock()
        self._messages: List[str] = []
        self._completions: "queue.Queue[Future]" = queue.Queue()
        self._futures: Dict[int, Future] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._dest_file: Optional[BinaryIO] = None
        self._source_handle: Optional[BinaryIO] = None
        self._closed = False

        if state is not None:
            self.bytes_copied = state.bytes_copied
            self.next_chunk_position = state.next_chunk_position
            self.chunk_size_hint = state.chunk_size_hint or self.settings.initial_chunk_size
            for position, size in state.chunks:
                self.outstanding[position] = ChunkState(position, size)

    @classmethod
    def open(cls, source: Path, destination_dir: Path,
             settings: Optional[CopySettings] = None,
             store: Optional[CheckpointStore] = None,
             token: Optional[CancellationToken] = None,
             on_progress: Optional[Callable[[str], None]] = None) -> "CopyJob":
        """Create a job for a source file, resuming from its checkpoint if any.

        Args:
            source: Source file path
            destination_dir: Directory receiving the copy
            settings: Chunking and retry settings
            store: Checkpoint store
            token: Cancellation token
            on_progress: Consumer of progress lines

        Returns:
            CopyJob ready to run

        Raises:
            SourceOpenError: If the source cannot be opened or stat'd
        """
        settings = settings or CopySettings()
        store = store or CheckpointStore(sync=settings.sync_writes)
        source = Path(source)
        destination_dir = Path(destination_dir)
        destination = destination_dir / source.name

        had_checkpoint = store.checkpoint_path(destination_dir, source.name).exists()
        state = store.load(destination_dir, source.name)
        overwrite = had_checkpoint and state is None

        loaded = state
        handle = None
        try:
            handle, total_size = cls._open_source(source)

            if state is not None and state.total_size != total_size:
                logger.warning(
                    f"Checkpoint for {source} records {state.total_size} bytes but the source "
                    f"has {total_size}, restarting from beginning"
                )
                state = None
                overwrite = True
            elif state is not None and not destination.exists():
                logger.warning(f"{destination} is missing, restarting from beginning")
                state = None

            job = cls(source, destination_dir, total_size, settings=settings, store=store,
                      token=token, state=state, overwrite=overwrite, on_progress=on_progress)
        except BaseException:
            if handle is not None:
                handle.close()
            if loaded is not None:
                store.save(loaded, destination_dir)
            raise

        job._source_handle = handle
        return job

    @staticmethod
    def _open_source(source: Path):
        """Open a source file for reading and return the handle with its size."""
        try:
            handle = open(source, 'rb')
        except OSError as e:
            raise SourceOpenError(f"Cannot open source {source}: {e}",
                                  {'source': str(source)}) from e
        try:
            return handle, os.fstat(handle.fileno()).st_size
        except OSError as e:
            handle.close()
            raise SourceOpenError(f"Cannot stat source {source}: {e}",
                                  {'source': str(source)}) from e
        except BaseException:
            handle.close()
            raise

    @property
    def is_complete(self) -> bool:
        return self.bytes_copied >= self.total_size

    def snapshot(self) -> JobState:
        """Take a consistent copy of the checkpointable state."""
        with self._lock:
            return self._state()

    def _state(self) -> JobState:
        return JobState(
            source=str(self.source),
            destination=str(self.destination),
            total_size=self.total_size,
            next_chunk_position=self.next_chunk_position,
            bytes_copied=self.bytes_copied,
            chunk_size_hint=self.chunk_size_hint,
            chunks=sorted((c.position, c.requested_size) for c in self.outstanding.values())
        )

    def _save_checkpoint(self) -> None:
        if self.total_size > 0 and not self.is_complete:
            self.store.save(self._state(), self.destination_dir)

    def _seed_chunks(self) -> None:
        """Schedule the initial chunks at the head of the unscheduled range."""
        while (len(self.outstanding) < self.settings.max_initial_chunks
               and self.next_chunk_position < self.total_size):
            size = min(self.chunk_size_hint, self.total_size - self.next_chunk_position)
            chunk = ChunkState(self.next_chunk_position, size)
            self.outstanding[chunk.position] = chunk
            self.next_chunk_position += size

    def start(self) -> CopyOutcome:
        """Open the destination and launch the outstanding chunks.

        Returns:
            CopyOutcome.SKIPPED if the destination already exists and there
            is nothing to resume, CopyOutcome.COMPLETED otherwise
        """
        with self._lock:
            if not self.resumed and self.destination.exists() and not self.overwrite:
                logger.warning(f"{self.destination} already exists. Don't overwrite.")
                self._close_source_handle()
                self._closed = True
                return CopyOutcome.SKIPPED

            if not self.outstanding:
                self._seed_chunks()

            # Loading consumed the sidecar. Write it back before touching the
            # destination so a kill before the first completion still resumes.
            self._save_checkpoint()
            if self.resumed:
                mode = 'r+b'
            else:
                mode = 'wb' if self.overwrite else 'xb'

            try:
                self._dest_file = open(self.destination, mode)
            except OSError as e:
                self._close_source_handle()
                self._closed = True
                raise DestinationWriteError(
                    f"Cannot open destination {self.destination}: {e}",
                    {'destination': str(self.destination)}
                ) from e

            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.max_initial_chunks,
                thread_name_prefix=f"chunk-{self.source.name}"
            )
            chunks = sorted(self.outstanding.values(), key=lambda c: c.position)
            if chunks and self._source_handle is not None:
                chunks[0].source_handle = self._source_handle
                self._source_handle = None
            self._close_source_handle()

            for chunk in chunks:
                self._launch(chunk)

        return CopyOutcome.COMPLETED

    def run(self) -> CopyOutcome:
        """Copy the file, blocking until it is complete.

        Returns:
            CopyOutcome.COMPLETED or CopyOutcome.SKIPPED

        Raises:
            CopyInterrupted: If the cancellation token was tripped
            DestinationWriteError: If writing the destination fails
            ChunkRetryExhaustedError: If a range keeps failing to read
            SourceTruncatedError: If the source shrank while copying
        """
        logger.info(f"{self.source} -> {self.destination_dir}")
        if self.start() is CopyOutcome.SKIPPED:
            return CopyOutcome.SKIPPED

        try:
            self._wait_for_completion()
        except CopyInterrupted:
            raise
        except BaseException:
            with self._lock:
                self._save_checkpoint_on_error()
                self._shutdown()
            raise

        self.close()
        with self._lock:
            self.store.delete(self.destination_dir, self.source.name)
        self._emit_messages()
        logger.info(f"Copied {comma_number(self.total_size)} bytes to {self.destination}")
        return CopyOutcome.COMPLETED

    def _wait_for_completion(self) -> None:
        while True:
            self._emit_messages()
            with self._lock:
                if self.is_complete:
                    return
                if not self.outstanding:
                    raise SourceTruncatedError(
                        f"{self.source} ended at {self.bytes_copied} bytes, "
                        f"expected {self.total_size}",
                        {'source': str(self.source)}
                    )

            if self.token.cancelled:
                self.checkpoint_and_stop()

            try:
                future = self._completions.get(timeout=self.settings.poll_interval)
            except queue.Empty:
                continue

            completion = future.result()
            self.on_chunk_complete(completion.position, completion.bytes_read,
                                   completion.success)

    def checkpoint_and_stop(self) -> None:
        """Save a checkpoint of the outstanding chunks and abandon the copy.

        In-flight reads are not waited for; their chunks are recorded by
        their original range and re-read on resume.

        Raises:
            CopyInterrupted: Always
        """
        signum = self.token.signum or signal.SIGINT
        with self._lock:
            self._save_checkpoint()
            state = self._state()
            self._shutdown()
        logger.info(
            f"Saved progress of {self.source}: {comma_number(state.bytes_copied)} of "
            f"{comma_number(state.total_size)} bytes, {len(state.chunks)} chunks outstanding"
        )
        raise CopyInterrupted(signum, {'source': str(self.source)})

    def _launch(self, chunk: ChunkState) -> None:
        task = ChunkTask(chunk, self.source, self.settings)
        future = self._executor.submit(task.run)
        self._futures[chunk.position] = future
        future.add_done_callback(self._completions.put)

    def on_chunk_complete(self, position: int, bytes_read: int,
                          success: bool) -> Optional[ChunkState]:
        """Apply a chunk completion: write its data and schedule its successor.

        Args:
            position: Offset of the completed chunk
            bytes_read: Bytes the chunk read
            success: False if the read failed before end-of-stream

        Returns:
            The successor chunk, if one was scheduled
        """
        with self._lock:
            if self._closed:
                logger.debug(f"Ignoring completion of chunk @{position} after shutdown")
                return None
            chunk = self.outstanding.pop(position, None)
            if chunk is None:
                logger.warning(f"Ignoring completion of unknown chunk @{position}")
                return None
            self._futures.pop(position, None)
            elapsed = time.monotonic() - chunk.started_at

            if bytes_read > 0:
                try:
                    self._write_chunk(chunk, bytes_read)
                except DestinationWriteError:
                    self.outstanding[position] = chunk
                    raise
            self.bytes_copied += bytes_read

            successor = None
            if success and bytes_read == chunk.requested_size:
                if self.next_chunk_position < self.total_size:
                    estimate = estimate_next_chunk_size(
                        bytes_read, elapsed, self.chunk_size_hint,
                        self.total_size - self.next_chunk_position, self.settings
                    )
                    self.chunk_size_hint = estimate.hint
                    successor = ChunkState(self.next_chunk_position, estimate.size)
                    self.next_chunk_position += estimate.size
            elif not success:
                attempt = chunk.attempt + 1 if bytes_read == 0 else 1
                successor = ChunkState(position + bytes_read,
                                       chunk.requested_size - bytes_read,
                                       attempt=attempt)
                if attempt > self.settings.max_chunk_retries:
                    chunk.close_handle()
                    self.outstanding[successor.position] = successor
                    raise ChunkRetryExhaustedError(
                        f"Reading {self.source} at {successor.position} failed "
                        f"{attempt} times in a row",
                        {'source': str(self.source), 'position': successor.position}
                    )

            if successor is not None and success:
                successor.source_handle = chunk.detach_handle()
            chunk.close_handle()
            chunk.buffer = None

            if successor is not None:
                self.outstanding[successor.position] = successor
            self._save_checkpoint()
            if successor is not None:
                self._launch(successor)

            message = format_progress(self.bytes_copied, self.total_size, position,
                                      bytes_read, elapsed)
            if successor is not None:
                message += (f", next chunk {comma_number(successor.position)} "
                            f"size {comma_number(successor.requested_size)}")
            self._messages.append(message)
            return successor

    def _write_chunk(self, chunk: ChunkState, bytes_read: int) -> None:
        data = chunk.buffer if bytes_read == len(chunk.buffer) else chunk.buffer[:bytes_read]
        try:
            self._dest_file.seek(chunk.position)
            self._dest_file.write(data)
            self._dest_file.flush()
            if self.settings.sync_writes:
                os.fsync(self._dest_file.fileno())
        except OSError as e:
            raise DestinationWriteError(
                f"Error writing {self.destination} at {chunk.position}: {e}",
                {'destination': str(self.destination), 'position': chunk.position}
            ) from e

    def drain_messages(self) -> List[str]:
        with self._lock:
            messages, self._messages = self._messages, []
        return messages

    def _emit_messages(self) -> None:
        for message in self.drain_messages():
            self.on_progress(message)

    def close(self) -> None:
        """Release the executor and all file handles."""
        with self._lock:
            self._shutdown()

    def _save_checkpoint_on_error(self) -> None:
        try:
            self._save_checkpoint()
        except OSError as e:
            logger.error(f"Error saving checkpoint for {self.source}: {e}")

    def _close_source_handle(self) -> None:
        if self._source_handle is not None:
            self._source_handle.close()
            self._source_handle = None

    def _shutdown(self) -> None:
        """Release the executor and file handles. Caller holds the lock."""
        if self._closed:
            return
        self._closed = True

        for position, chunk in self.outstanding.items():
            future = self._futures.get(position)
            if future is None or future.done() or future.cancel():
                chunk.close_handle()
            else:
                future.add_done_callback(lambda f, c=chunk: c.close_handle())
        self._futures.clear()

        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        self._close_source_handle()
        if self._dest_file is not None:
            self._dest_file.close()
            self._dest_file = None
