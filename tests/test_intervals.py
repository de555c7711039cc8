from __future__ import annotations

import random

import pytest

from presencebot.errors import InvalidWindow
from presencebot.utils.intervals import (
    clip,
    intersection_duration,
    overlap_duration,
    sum_overlap,
)

from .conftest import HOUR, MINUTE

T0 = 1_700_000_000_000


def at(h: float) -> int:
    return T0 + int(h * HOUR)


def test_open_session_is_clipped_to_window_end_not_now():
    session = (at(10), None)
    assert overlap_duration(session, at(9), at(11), now=at(11.5)) == 60 * MINUTE


def test_open_session_runs_until_now_inside_window():
    assert overlap_duration((at(10), None), at(9), at(12), now=at(10.25)) == 15 * MINUTE


def test_nested_sessions_sum_and_intersection():
    active = [(at(10), at(12))]
    qualifying = [(at(10.5), at(11.5))]
    ws, we, now = at(0), at(24), at(24)
    assert sum_overlap(active, ws, we, now) == 120 * MINUTE
    assert sum_overlap(qualifying, ws, we, now) == 60 * MINUTE
    assert intersection_duration(active, qualifying, ws, we, now) == 60 * MINUTE


def test_session_outside_window_contributes_nothing():
    assert overlap_duration((at(1), at(2)), at(3), at(4), now=at(5)) == 0
    assert clip((at(1), at(2)), at(3), at(4), at(5)) is None


def test_touching_boundary_has_zero_length():
    assert overlap_duration((at(1), at(2)), at(2), at(3), now=at(5)) == 0


def test_empty_lists():
    assert sum_overlap([], at(0), at(1), at(1)) == 0
    assert intersection_duration([], [(at(0), at(1))], at(0), at(1), at(1)) == 0
    assert intersection_duration([(at(0), at(1))], [], at(0), at(1), at(1)) == 0


def test_reversed_window_is_rejected():
    with pytest.raises(InvalidWindow):
        sum_overlap([(at(1), at(2))], at(3), at(2), at(4))
    with pytest.raises(InvalidWindow):
        intersection_duration([], [], at(3), at(2), at(4))
    with pytest.raises(ValueError):
        overlap_duration((at(1), at(2)), at(3), at(2), at(4))


def test_equal_ends_advance_both_sides():
    a = [(at(1), at(2)), (at(3), at(4))]
    b = [(at(1.5), at(2)), (at(3.5), at(5))]
    total = intersection_duration(a, b, at(0), at(6), at(6))
    assert total == 30 * MINUTE + 30 * MINUTE


def test_one_long_interval_against_many_short():
    a = [(at(0), at(10))]
    b = [(at(1), at(2)), (at(3), at(4)), (at(9), at(11))]
    assert intersection_duration(a, b, at(0), at(10), at(12)) == 3 * HOUR
    assert intersection_duration(b, a, at(0), at(10), at(12)) == 3 * HOUR


def _disjoint(rng: random.Random, n: int, open_last: bool = False):
    out = []
    t = T0
    for i in range(n):
        start = t + rng.randint(0, 3 * HOUR)
        end = start + rng.randint(1, 4 * HOUR)
        out.append((start, end))
        t = end
    if open_last and out:
        out[-1] = (out[-1][0], None)
    return out


def test_generated_symmetry_and_bound():
    rng = random.Random(1234)
    for _ in range(300):
        a = _disjoint(rng, rng.randint(0, 6), open_last=rng.random() < 0.3)
        b = _disjoint(rng, rng.randint(0, 6), open_last=rng.random() < 0.3)
        ws = T0 + rng.randint(0, 10 * HOUR)
        we = ws + rng.randint(0, 30 * HOUR)
        now = T0 + rng.randint(0, 40 * HOUR)
        ab = intersection_duration(a, b, ws, we, now)
        ba = intersection_duration(b, a, ws, we, now)
        assert ab == ba
        assert 0 <= ab <= min(sum_overlap(a, ws, we, now), sum_overlap(b, ws, we, now))


def test_widening_window_never_decreases_total():
    rng = random.Random(99)
    for _ in range(200):
        sessions = _disjoint(rng, rng.randint(1, 8), open_last=rng.random() < 0.5)
        now = T0 + 48 * HOUR
        ws = T0 + rng.randint(0, 20 * HOUR)
        we = ws + rng.randint(0, 10 * HOUR)
        prev = sum_overlap(sessions, ws, we, now)
        for _ in range(5):
            ws -= rng.randint(0, 2 * HOUR)
            we += rng.randint(0, 2 * HOUR)
            cur = sum_overlap(sessions, ws, we, now)
            assert cur >= prev
            prev = cur
