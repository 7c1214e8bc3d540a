"""
Chunk size estimation from measured throughput.

The next chunk is sized so that copying it takes about
``CopySettings.target_chunk_seconds`` at the rate the previous chunk achieved.
This module is pure: no I/O, no clocks, no job state.
"""
from typing import Optional

from .models import ChunkSizeEstimate, CopySettings

# Below this the clock cannot be trusted to measure a rate.
MIN_MEASURABLE_SECONDS = 1e-6


def estimate_next_chunk_size(bytes_read: int, elapsed: float, current_hint: int,
                             remaining: int,
                             settings: Optional[CopySettings] = None) -> ChunkSizeEstimate:
    """Compute the size of the next chunk to schedule.

    Args:
        bytes_read: Bytes read by the chunk that just completed
        elapsed: Seconds the completed chunk took
        current_hint: The job's current recommended chunk size
        remaining: Bytes from the next chunk position to the end of the file
        settings: Size limits and target duration

    Returns:
        ChunkSizeEstimate with the size to schedule and the hint to keep.
        The size never exceeds ``settings.max_chunk_size`` and is only below
        ``settings.min_chunk_size`` when fewer bytes than that remain.
    """
    settings = settings or CopySettings()
    if remaining <= 0:
        return ChunkSizeEstimate(size=0, hint=current_hint)

    hint = current_hint
    size = current_hint
    if elapsed >= MIN_MEASURABLE_SECONDS:
        candidate = int(bytes_read * (settings.target_chunk_seconds / elapsed))
        if candidate >= settings.min_chunk_size:
            if candidate > settings.max_chunk_size:
                size = settings.max_chunk_size
            else:
                size = hint = candidate

    size = min(size, settings.max_chunk_size)

    # Widen to the end of the file rather than leave a sliver behind.
    if remaining <= size or remaining - size < size / 2:
        size = min(remaining, settings.max_chunk_size)

    return ChunkSizeEstimate(size=size, hint=hint)
