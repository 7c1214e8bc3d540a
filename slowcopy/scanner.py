"""
Module for walking source trees and preparing destination directories.
"""
import logging
from pathlib import Path
from typing import Iterator, Tuple

from .checkpoint import CHECKPOINT_SUFFIX
from .exceptions import DestinationError

logger = logging.getLogger(__name__)


class FileScanner:
    """Walks a source directory and pairs each file with its target directory."""

    def prepare_destination(self, destination: Path) -> Path:
        """Create the destination directory if it does not exist.

        Args:
            destination: Directory that will receive files

        Returns:
            The destination path

        Raises:
            DestinationError: If the path exists but is not a directory
        """
        if destination.exists():
            if not destination.is_dir():
                raise DestinationError(
                    f"{destination} is not a directory to save files.",
                    {'destination': str(destination)}
                )
        else:
            try:
                destination.mkdir()
            except OSError as e:
                raise DestinationError(f"Cannot create {destination}: {e}",
                                       {'destination': str(destination)}) from e
            logger.debug(f"Created directory {destination}")
        return destination

    def iter_copy_pairs(self, source_dir: Path,
                        destination_dir: Path) -> Iterator[Tuple[Path, Path]]:
        """Yield (source file, destination directory) pairs for a tree copy.

        The tree is copied into ``destination_dir / source_dir.name``;
        directories are created on the way down, in sorted order.

        Args:
            source_dir: Source directory to copy
            destination_dir: Directory that receives the copied tree

        Raises:
            DestinationError: If a destination directory cannot be created
        """
        target = self.prepare_destination(destination_dir / source_dir.name)

        try:
            entries = sorted(source_dir.iterdir())
        except OSError as e:
            logger.error(f"Error scanning folder {source_dir}: {e}")
            return

        for entry in entries:
            if entry.is_file():
                if entry.name.endswith(CHECKPOINT_SUFFIX):
                    continue
                yield entry, target
            elif entry.is_dir():
                logger.info(f"{entry}")
                yield from self.iter_copy_pairs(entry, target)

