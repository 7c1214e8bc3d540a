"""
Test fixtures for the copy engine.
"""
import random
from pathlib import Path
from unittest.mock import patch

import pytest
from tenacity import wait_none

from slowcopy.checkpoint import CheckpointStore
from slowcopy.chunk_task import ChunkTask
from slowcopy.models import CopySettings, KIB


@pytest.fixture(autouse=True)
def no_wait():
    """Remove wait time between read retries for testing."""
    with patch('slowcopy.chunk_task.wait_exponential', return_value=wait_none()):
        yield


@pytest.fixture
def tmp_source_dir(tmp_path):
    """Create a temporary directory for source files."""
    source_dir = tmp_path / "source"
    source_dir.mkdir()
    return source_dir


@pytest.fixture
def tmp_dest_dir(tmp_path):
    """Create a temporary destination directory."""
    dest_dir = tmp_path / "dest"
    dest_dir.mkdir()
    return dest_dir


@pytest.fixture
def settings():
    """Small chunks and fast polling so tests exercise many chunks."""
    return CopySettings(
        initial_chunk_size=16 * KIB,
        max_chunk_size=64 * KIB,
        read_block_size=4 * KIB,
        poll_interval=0.01
    )


@pytest.fixture
def store():
    return CheckpointStore(sync=False)


def make_bytes(size: int, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    return rng.randbytes(size)


@pytest.fixture
def make_source(tmp_source_dir):
    """Factory writing a source file with reproducible random content."""
    def _make(name: str = "big.bin", size: int = 300 * KIB, seed: int = 0) -> Path:
        path = tmp_source_dir / name
        path.write_bytes(make_bytes(size, seed))
        return path
    return _make


class ManualDriver:
    """Runs a job's chunk reads inline instead of on its executor."""

    def __init__(self, job):
        self.job = job
        self.launched = []
        job._launch = self.launched.append

    def complete_next(self):
        chunk = self.launched.pop(0)
        completion = ChunkTask(chunk, self.job.source, self.job.settings).run()
        return self.job.on_chunk_complete(completion.position, completion.bytes_read,
                                          completion.success)


def assert_partitioned(state):
    """Completed, outstanding and unscheduled ranges cover the file exactly."""
    outstanding = sum(size for _, size in state.chunks)
    assert state.bytes_copied + outstanding + (state.total_size - state.next_chunk_position) \
        == state.total_size
    end = 0
    for position, size in state.chunks:
        assert position >= end
        end = position + size
    assert end <= state.next_chunk_position
