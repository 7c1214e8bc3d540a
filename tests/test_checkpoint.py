"""
Tests for the checkpoint store.
"""
import json
import logging
from unittest.mock import patch

import pytest

from slowcopy.checkpoint import CheckpointStore
from slowcopy.models import JobState


@pytest.fixture
def job_state(tmp_dest_dir):
    return JobState(
        source="/data/big.bin",
        destination=str(tmp_dest_dir / "big.bin"),
        total_size=1_000_000,
        next_chunk_position=300_000,
        bytes_copied=150_000,
        chunk_size_hint=65536,
        chunks=[(100_000, 50_000), (200_000, 100_000)]
    )


def test_checkpoint_path_uses_source_base_name(tmp_dest_dir):
    """Test that the sidecar is named after the source file."""
    path = CheckpointStore.checkpoint_path(tmp_dest_dir, "/data/big.bin")
    assert path == tmp_dest_dir / "big.bin._chunks_"


def test_save_writes_record(store, job_state, tmp_dest_dir):
    """Test that the saved record holds metadata and outstanding ranges only."""
    path = store.save(job_state, tmp_dest_dir)

    with open(path) as f:
        data = json.load(f)
    assert data['source'] == "/data/big.bin"
    assert data['size'] == 1_000_000
    assert data['nextChunkPosition'] == 300_000
    assert data['bytesCopied'] == 150_000
    assert data['chunks'] == [
        {'position': 100_000, 'chunkSize': 50_000},
        {'position': 200_000, 'chunkSize': 100_000}
    ]
    assert not path.with_name(path.name + ".tmp").exists()


def test_load_restores_state_and_consumes_file(store, job_state, tmp_dest_dir):
    """Test that loading returns the saved state and deletes the sidecar."""
    path = store.save(job_state, tmp_dest_dir)

    loaded = store.load(tmp_dest_dir, "big.bin")

    assert loaded == job_state
    assert not path.exists()


def test_load_missing_returns_none(store, tmp_dest_dir):
    """Test that a missing checkpoint is reported as not found."""
    assert store.load(tmp_dest_dir, "big.bin") is None


def test_load_accepts_string_numbers(store, tmp_dest_dir):
    """Test that numbers written as decimal strings are accepted."""
    record = {
        'source': "big.bin",
        'destination': str(tmp_dest_dir),
        'size': "1000",
        'nextChunkPosition': "600",
        'bytesCopied': "300",
        'chunks': [{'position': "300", 'chunkSize': "300", 'dataSize': "12"}]
    }
    (tmp_dest_dir / "big.bin._chunks_").write_text(json.dumps(record))

    state = store.load(tmp_dest_dir, "big.bin")

    assert state.total_size == 1000
    assert state.chunks == [(300, 300)]
    assert state.chunk_size_hint == 0


@pytest.mark.parametrize("content", [
    "invalid json{",
    "[]",
    json.dumps({'source': "big.bin"}),
    json.dumps({'source': "a", 'destination': "b", 'size': 100, 'nextChunkPosition': 100,
                'bytesCopied': 0, 'chunks': [{'position': 0, 'chunkSize': 60},
                                             {'position': 50, 'chunkSize': 50}]}),
    json.dumps({'source': "a", 'destination': "b", 'size': 100, 'nextChunkPosition': 200,
                'bytesCopied': 0, 'chunks': []}),
    json.dumps({'source': "a", 'destination': "b", 'size': 100, 'nextChunkPosition': 100,
                'bytesCopied': 10, 'chunks': [{'position': 0, 'chunkSize': "ten"}]}),
    json.dumps({'source': "a", 'destination': "b", 'size': 100, 'nextChunkPosition': 50,
                'bytesCopied': 10, 'chunks': []}),
    json.dumps({'source': "a", 'destination': "b", 'size': True, 'nextChunkPosition': 1,
                'bytesCopied': 1, 'chunks': []}),
    json.dumps({'source': "a", 'destination': "b", 'size': 100, 'nextChunkPosition': 12.9,
                'bytesCopied': 0, 'chunks': [{'position': 0, 'chunkSize': 12.9}]}),
])
def test_corrupt_checkpoint_is_treated_as_missing(store, tmp_dest_dir, content, caplog):
    """Test that malformed checkpoints fall back to a fresh copy."""
    (tmp_dest_dir / "big.bin._chunks_").write_text(content)

    with caplog.at_level(logging.WARNING):
        assert store.load(tmp_dest_dir, "big.bin") is None
    assert "restarting from beginning" in caplog.text


def test_delete_is_idempotent(store, job_state, tmp_dest_dir):
    """Test that deleting a missing checkpoint is not an error."""
    path = store.save(job_state, tmp_dest_dir)
    store.delete(tmp_dest_dir, "big.bin")
    store.delete(tmp_dest_dir, "big.bin")
    assert not path.exists()


def test_load_survives_undeletable_checkpoint(store, job_state, tmp_dest_dir, caplog):
    """Test that a checkpoint that cannot be removed still resumes the copy."""
    store.save(job_state, tmp_dest_dir)

    with patch('pathlib.Path.unlink', side_effect=PermissionError("read-only")):
        with caplog.at_level(logging.WARNING):
            state = store.load(tmp_dest_dir, "big.bin")

    assert state == job_state
    assert "Failed to remove checkpoint" in caplog.text
