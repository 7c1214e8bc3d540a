"""
Module for coordinating file and directory copies.
"""
import logging
from contextlib import nullcontext
from pathlib import Path
from typing import Callable, Optional

from .cancellation import CancellationGate, CancellationToken
from .checkpoint import CheckpointStore
from .exceptions import CopyInterrupted, SlowCopyError, SourceOpenError
from .job import CopyJob
from .models import CopyOutcome, CopyResult, CopySettings, CopySummary
from .scanner import FileScanner

logger = logging.getLogger(__name__)


class CopyCoordinator:
    """Copies a file or a directory tree one resumable job at a time."""

    def __init__(self, settings: Optional[CopySettings] = None,
                 gate: Optional[CancellationGate] = None,
                 on_progress: Optional[Callable[[str], None]] = None):
        """Initialize the copy coordinator.

        Args:
            settings: Chunking and retry settings shared by all jobs
            gate: Cancellation gate the active job registers with
            on_progress: Consumer of progress lines
        """
        self.settings = settings or CopySettings()
        self.scanner = FileScanner()
        self.store = CheckpointStore(sync=self.settings.sync_writes)
        self.gate = gate
        self.on_progress = on_progress

    def copy_file(self, source: Path, destination_dir: Path) -> CopyResult:
        """Copy a single file into a directory.

        Args:
            source: File to copy
            destination_dir: Existing directory to copy into

        Returns:
            CopyResult for the file

        Raises:
            CopyInterrupted: If the copy was cancelled by a signal
        """
        destination = destination_dir / source.name
        token = CancellationToken()
        # The gate holds the token before open() consumes the checkpoint.
        guard = self.gate.guard(token) if self.gate else nullcontext(token)
        with guard:
            result = self._run_job(source, destination, destination_dir, token)

        if token.cancelled:
            raise CopyInterrupted(token.signum, {'source': str(source)})
        return result

    def _run_job(self, source: Path, destination: Path, destination_dir: Path,
                 token: CancellationToken) -> CopyResult:
        try:
            job = CopyJob.open(source, destination_dir, settings=self.settings,
                               store=self.store, token=token,
                               on_progress=self.on_progress)
        except SourceOpenError as e:
            logger.error(f"Error opening {source}: {e}")
            return CopyResult(source=source, destination=destination,
                              outcome=CopyOutcome.FAILED, error=str(e))

        try:
            outcome = job.run()
        except CopyInterrupted:
            raise
        except SlowCopyError as e:
            logger.error(f"Error copying {source}: {e}")
            return CopyResult(source=source, destination=destination,
                              outcome=CopyOutcome.FAILED, bytes_copied=job.bytes_copied,
                              total_size=job.total_size, resumed=job.resumed, error=str(e))

        return CopyResult(source=source, destination=destination, outcome=outcome,
                          bytes_copied=job.bytes_copied if outcome is CopyOutcome.COMPLETED else 0,
                          total_size=job.total_size, resumed=job.resumed)

    def copy(self, source: Path, destination: Path = Path(".")) -> CopySummary:
        """Copy a file or directory tree into a destination directory.

        Args:
            source: File or directory to copy
            destination: Directory to copy into; created if absent

        Returns:
            CopySummary of all files processed

        Raises:
            SourceOpenError: If the source is neither a file nor a directory
            DestinationError: If the destination cannot be used
            CopyInterrupted: If the copy was cancelled by a signal
        """
        source = Path(source)
        destination = self.scanner.prepare_destination(Path(destination))
        summary = CopySummary(source=source, destination=destination)

        if source.is_file():
            summary.results.append(self.copy_file(source, destination))
        elif source.is_dir():
            for file_path, target_dir in self.scanner.iter_copy_pairs(source, destination):
                summary.results.append(self.copy_file(file_path, target_dir))
        else:
            raise SourceOpenError(f"Source {source} does not exist",
                                  {'source': str(source)})

        logger.info(
            f"Finished {source}: {summary.completed} copied, {summary.skipped} skipped, "
            f"{summary.failed} failed of {summary.total_files} files"
        )
        return summary
