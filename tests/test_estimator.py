"""
Tests for chunk size estimation.
"""
import pytest

from slowcopy.estimator import estimate_next_chunk_size
from slowcopy.models import CopySettings, KIB, MIB

DEFAULTS = CopySettings()


def test_negligible_elapsed_reuses_hint():
    """Test that an unmeasurable duration keeps the current hint."""
    estimate = estimate_next_chunk_size(64 * KIB, 0.0, 64 * KIB, 100 * MIB)
    assert estimate.size == 64 * KIB
    assert estimate.hint == 64 * KIB


def test_fast_chunk_scales_toward_target_duration():
    """Test that the next chunk is sized to take the target duration."""
    estimate = estimate_next_chunk_size(64 * KIB, 0.5, 64 * KIB, 100 * MIB)
    assert estimate.size == 64 * KIB * 20
    assert estimate.hint == estimate.size


def test_candidate_below_floor_falls_back_to_hint():
    """Test that a tiny candidate is discarded in favor of the hint."""
    estimate = estimate_next_chunk_size(100, 10.0, 64 * KIB, 100 * MIB)
    assert estimate.size == 64 * KIB
    assert estimate.hint == 64 * KIB


def test_candidate_above_ceiling_is_clamped_without_updating_hint():
    """Test that oversized candidates are capped and not remembered."""
    estimate = estimate_next_chunk_size(64 * MIB, 1.0, 1 * MIB, 1024 * MIB)
    assert estimate.size == DEFAULTS.max_chunk_size
    assert estimate.hint == 1 * MIB


def test_tail_merge_when_remaining_fits():
    """Test that the last chunk takes everything that remains."""
    estimate = estimate_next_chunk_size(64 * KIB, 0.5, 64 * KIB, 1 * MIB)
    assert estimate.size == 1 * MIB


def test_tail_merge_avoids_sliver():
    """Test that a remainder under half a chunk is folded into the chunk."""
    size = 64 * KIB * 20
    remaining = size + size // 2 - 1
    estimate = estimate_next_chunk_size(64 * KIB, 0.5, 64 * KIB, remaining)
    assert estimate.size == remaining


def test_no_tail_merge_when_remainder_is_large_enough():
    """Test that a remainder of at least half a chunk stays separate."""
    size = 64 * KIB * 20
    remaining = size + size // 2
    estimate = estimate_next_chunk_size(64 * KIB, 0.5, 64 * KIB, remaining)
    assert estimate.size == size


def test_tail_merge_never_exceeds_ceiling():
    """Test that merging the tail still respects the maximum chunk size."""
    remaining = DEFAULTS.max_chunk_size + 10 * MIB
    estimate = estimate_next_chunk_size(64 * MIB, 1.0, 1 * MIB, remaining)
    assert estimate.size == DEFAULTS.max_chunk_size


def test_small_remainder_below_floor():
    """Test that fewer bytes than the floor remaining yields a short final chunk."""
    estimate = estimate_next_chunk_size(64 * KIB, 0.5, 64 * KIB, 1000)
    assert estimate.size == 1000


def test_custom_settings_are_respected():
    """Test that limits come from the supplied settings."""
    settings = CopySettings(min_chunk_size=1024, max_chunk_size=8 * KIB,
                            target_chunk_seconds=1.0)
    estimate = estimate_next_chunk_size(4 * KIB, 0.1, 4 * KIB, 1 * MIB, settings)
    assert estimate.size == 8 * KIB


@pytest.mark.parametrize("elapsed", [1e-9, 1e-6, 1e-4, 0.01, 0.5, 3.0, 10.0, 60.0, 3600.0])
@pytest.mark.parametrize("bytes_read", [1, 4096, 64 * KIB, 10 * MIB, 64 * MIB])
@pytest.mark.parametrize("remaining", [5000, 3 * MIB, 200 * MIB])
def test_estimate_stays_within_bounds(elapsed, bytes_read, remaining):
    """Test that sizes stay within the floor and ceiling and never leave a sliver."""
    estimate = estimate_next_chunk_size(bytes_read, elapsed, 64 * KIB, remaining)

    assert DEFAULTS.min_chunk_size <= estimate.size <= DEFAULTS.max_chunk_size
    assert estimate.size <= remaining
    left = remaining - estimate.size
    if left > 0 and estimate.size < DEFAULTS.max_chunk_size:
        assert left >= estimate.size / 2
    assert DEFAULTS.min_chunk_size <= estimate.hint <= DEFAULTS.max_chunk_size


def test_large_file_first_chunk_scales_up():
    """Test the first estimate for a 150,000,000-byte file after a fast 64 KiB chunk."""
    total = 150_000_000
    first = 64 * KIB
    estimate = estimate_next_chunk_size(first, 0.25, first, total - 2 * first)
    assert first < estimate.size <= 64 * MIB
