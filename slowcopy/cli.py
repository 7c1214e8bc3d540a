"""
Command-line interface for the copy engine.
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .cancellation import CancellationGate
from .checkpoint import CHECKPOINT_SUFFIX, CheckpointStore
from .coordinator import CopyCoordinator
from .exceptions import CopyInterrupted, SlowCopyError
from .formatting import comma_number
from .models import CopySettings

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: Whether to enable debug logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def load_config(config_file: Optional[Path] = None) -> dict:
    """Load configuration from a JSON file.

    Args:
        config_file: Path to config file

    Returns:
        Dictionary of configuration values
    """
    if not config_file:
        return {}

    try:
        with open(config_file) as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Error loading config file: {e}")
        return {}


def create_settings(args: argparse.Namespace) -> CopySettings:
    """Build copy settings from the config file, falling back to defaults.

    Args:
        args: Command line arguments

    Returns:
        CopySettings instance
    """
    config = load_config(args.config)
    try:
        return CopySettings.from_dict(config)
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid configuration, using defaults: {e}")
        return CopySettings()


def handle_copy(args: argparse.Namespace) -> int:
    """Handle the copy command.

    Args:
        args: Command line arguments

    Returns:
        Process exit code
    """
    gate = CancellationGate()
    gate.install()
    coordinator = CopyCoordinator(settings=create_settings(args), gate=gate)

    try:
        summary = coordinator.copy(Path(args.source), Path(args.destination))
    except CopyInterrupted as e:
        print("Aborted, run this command again to resume copying.")
        return e.exit_code
    finally:
        gate.restore()

    for result in summary.results:
        if result.error:
            print(f"Failed: {result.source}: {result.error}")
    return 1 if summary.failed else 0


def handle_status(args: argparse.Namespace) -> int:
    """Handle the status command: list unfinished copies in a directory.

    Args:
        args: Command line arguments

    Returns:
        Process exit code
    """
    directory = Path(args.destination)
    if not directory.is_dir():
        print(f"{directory} is not a directory")
        return 1

    store = CheckpointStore()
    found = False
    for path in sorted(directory.rglob(f"*{CHECKPOINT_SUFFIX}")):
        try:
            with open(path) as f:
                state = store.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            print(f"\n{path}: unreadable checkpoint ({e})")
            continue

        found = True
        percent = 100.0 * state.bytes_copied / state.total_size if state.total_size else 100.0
        print(f"\nSource: {state.source}")
        print(f"Destination: {state.destination}")
        print(f"Copied: {comma_number(state.bytes_copied)} of "
              f"{comma_number(state.total_size)} bytes ({percent:.1f}%)")
        print(f"Outstanding chunks: {len(state.chunks)}")

    if not found:
        print("No unfinished copies found")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Resumable chunked file copy")
    parser.add_argument('-v', '--verbose', action='store_true',
                        help="Enable verbose logging")
    parser.add_argument('-c', '--config', type=Path,
                        help="Path to config file")

    subparsers = parser.add_subparsers(dest='command', required=True)

    # Copy command
    copy_parser = subparsers.add_parser('copy',
                                        help="Copy a file or directory, resuming if interrupted")
    copy_parser.add_argument('source', type=str,
                             help="Source file or directory")
    copy_parser.add_argument('destination', type=str, nargs='?', default='.',
                             help="Destination directory (default: current directory)")

    # Status command
    status_parser = subparsers.add_parser('status',
                                          help="List unfinished copies in a directory")
    status_parser.add_argument('destination', type=str, nargs='?', default='.',
                               help="Destination directory to inspect")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.command == 'copy':
            code = handle_copy(args)
        else:
            code = handle_status(args)
    except SlowCopyError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    sys.exit(code)


if __name__ == '__main__':
    main()
