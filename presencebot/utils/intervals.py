"""Interval arithmetic over stored sessions.

A session is anything with ``start_ts``/``end_ts`` attributes (``end_ts`` may
be None for an ongoing session) or a plain ``(start, end)`` tuple. All values
are epoch milliseconds. An ongoing session counts as running until ``now``.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from ..errors import InvalidWindow

Interval = Tuple[int, int]


def _bounds(session) -> Tuple[int, Optional[int]]:
    if isinstance(session, tuple):
        start, end = session
        return int(start), (None if end is None else int(end))
    end = session.end_ts
    return int(session.start_ts), (None if end is None else int(end))


def check_window(window_start: int, window_end: int) -> None:
    if window_start > window_end:
        raise InvalidWindow(window_start, window_end)


def clip(session, window_start: int, window_end: int, now: int) -> Optional[Interval]:
    """The part of ``session`` inside ``[window_start, window_end)``, or None."""
    start, end = _bounds(session)
    s = max(start, window_start)
    e = min(now if end is None else end, window_end)
    return (s, e) if e > s else None


def overlap_duration(session, window_start: int, window_end: int, now: int) -> int:
    check_window(window_start, window_end)
    piece = clip(session, window_start, window_end, now)
    return piece[1] - piece[0] if piece else 0


def sum_overlap(sessions: Iterable, window_start: int, window_end: int, now: int) -> int:
    """
    Total time ``sessions`` spend inside the window.

    Same-kind sessions of one subject never overlap, so a plain sum is exact;
    no merging happens here.
    """
    check_window(window_start, window_end)
    total = 0
    for s in sessions:
        piece = clip(s, window_start, window_end, now)
        if piece:
            total += piece[1] - piece[0]
    return total


def clipped(sessions: Iterable, window_start: int, window_end: int, now: int) -> List[Interval]:
    pieces = [clip(s, window_start, window_end, now) for s in sessions]
    return sorted(p for p in pieces if p)


def intersection_duration(
    sessions_a: Sequence,
    sessions_b: Sequence,
    window_start: int,
    window_end: int,
    now: int,
) -> int:
    """
    Time both interval sets are simultaneously inside the window.

    Two-pointer sweep over the clipped, start-ordered lists. The pointer whose
    interval ends first moves on; on an equal end both move.
    """
    check_window(window_start, window_end)
    a = clipped(sessions_a, window_start, window_end, now)
    b = clipped(sessions_b, window_start, window_end, now)

    total = 0
    i = j = 0
    while i < len(a) and j < len(b):
        sa, ea = a[i]
        sb, eb = b[j]
        overlap = min(ea, eb) - max(sa, sb)
        if overlap > 0:
            total += overlap
        if ea < eb:
            i += 1
        elif eb < ea:
            j += 1
        else:
            i += 1
            j += 1
    return total


__all__ = [
    "Interval",
    "check_window",
    "clip",
    "clipped",
    "intersection_duration",
    "overlap_duration",
    "sum_overlap",
]
