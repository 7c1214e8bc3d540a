"""
Formatting helpers for progress output.
"""

_KB = 1000.0
_MB = _KB * 1000.0


def comma_number(n: int) -> str:
    """Format an integer with thousands separators, e.g. ``1,048,576``."""
    return f"{n:,}"


def format_rate(num_bytes: int, seconds: float) -> str:
    """Format a transfer rate using decimal units.

    Args:
        num_bytes: Bytes transferred
        seconds: Time taken

    Returns:
        Rate such as ``"12.3 MB/s"``; ``"0.0 Bytes/s"`` when the time is
        too short to measure
    """
    if seconds <= 0:
        return "0.0 Bytes/s"

    rate = num_bytes / seconds
    if rate > _MB:
        return f"{rate / _MB:.1f} MB/s"
    if rate > _KB:
        return f"{rate / _KB:.1f} KB/s"
    return f"{rate:.1f} Bytes/s"


def format_progress(bytes_copied: int, total_size: int, position: int,
                    chunk_bytes: int, seconds: float) -> str:
    """Build the progress line reported after each chunk."""
    percent = 100.0 * bytes_copied / total_size if total_size else 100.0
    line = (f"{percent:.1f}% done {comma_number(bytes_copied)} bytes, "
            f"chunk @{comma_number(position)} {comma_number(chunk_bytes)} bytes")
    if chunk_bytes > 0:
        line += f" {format_rate(chunk_bytes, seconds)}"
    return line
