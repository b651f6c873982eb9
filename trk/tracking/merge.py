"""
Stop merge policy and the stop count derived from it.
"""

from typing import Iterable, Optional

from trk.utils.validate import Point


def should_merge_with_previous(
    last_stop_end: Optional[int],
    ts: int,
    debounce_ms: int = 10_000,
) -> bool:
    """
    Decide whether a stop starting at `ts` continues the previous stop.

    Parameters
    ----------
    last_stop_end
        When the previous stop ended, or None if there was none.
    ts
        When the vehicle came to rest again.
    debounce_ms
        Gaps shorter than this are treated as creeping within the same stop.

    Returns
    -------
    bool
        True to merge (the new stop point gets `stop_segment_start=False`).
    """
    if last_stop_end is None:
        return False
    return ts - last_stop_end < debounce_ms


def count_stops(points: Iterable[Point]) -> int:
    """
    Number of distinct stops: stationary points that open a new stop.
    """
    return sum(1 for p in points if p.is_stationary and p.stop_segment_start is True)
