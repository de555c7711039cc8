from __future__ import annotations

import sqlite3
from datetime import date

import pytest
from dateutil import tz

from presencebot import tracker
from presencebot.errors import InvalidWindow
from presencebot.models import aggregates, sessions
from presencebot.utils import rollup

from .conftest import HOUR, MINUTE, ms

GUILD = 7
DAY = date(2024, 3, 5)
UTC = tz.UTC


def _seed():
    start = ms(2024, 3, 5, 10)
    # subject 1: online 10:00-12:00, status 10:30-11:30
    sessions.apply_observation(1, GUILD, start, True, False)
    sessions.apply_observation(1, GUILD, start + 30 * MINUTE, True, True, "focus")
    sessions.apply_observation(1, GUILD, start + 90 * MINUTE, True, False)
    sessions.apply_observation(1, GUILD, start + 2 * HOUR, False, False)
    # subject 2: online from 23:00 on the 5th until 01:00 on the 6th
    late = ms(2024, 3, 5, 23)
    sessions.apply_observation(2, GUILD, late, True, True, "late")
    sessions.apply_observation(2, GUILD, late + 2 * HOUR, False, False)


def _dump(db_path):
    con = sqlite3.connect(db_path)
    try:
        return con.execute("SELECT * FROM daily_aggregates ORDER BY subject_id").fetchall()
    finally:
        con.close()


def test_subject_totals(db_path):
    _seed()
    p_start, p_end = ms(2024, 3, 5), ms(2024, 3, 6)
    t = rollup.compute_subject_totals(1, p_start, p_end, now_ms=p_end)
    assert (t.active_ms, t.qualifying_ms, t.qualifying_while_active_ms) == (
        2 * HOUR,
        HOUR,
        HOUR,
    )
    late = rollup.compute_subject_totals(2, p_start, p_end, now_ms=p_end)
    assert late.active_ms == HOUR


def test_rollup_writes_one_row_per_subject(db_path):
    _seed()
    result = rollup.compute_for_period([1, 2, 2], GUILD, "day", DAY, now_ms=ms(2024, 3, 7), tz=UTC)
    assert result.ok
    assert result.succeeded == [1, 2]
    assert result.period.label == "2024-03-05"

    row = aggregates.get_aggregate("day", 1, GUILD, "2024-03-05")
    assert (row.active_ms, row.qualifying_ms, row.qualifying_while_active_ms) == (2 * HOUR, HOUR, HOUR)
    assert (row.window_start_ts, row.window_end_ts) == (ms(2024, 3, 5), ms(2024, 3, 6))

    nxt = rollup.compute_for_period([2], GUILD, "day", date(2024, 3, 6), now_ms=ms(2024, 3, 7), tz=UTC)
    assert nxt.ok
    assert aggregates.get_aggregate("day", 2, GUILD, "2024-03-06").active_ms == HOUR


def test_rerunning_a_rollup_leaves_rows_identical(db_path):
    _seed()
    rollup.compute_for_period([1, 2], GUILD, "day", DAY, now_ms=ms(2024, 3, 7), tz=UTC)
    first = _dump(db_path)
    rollup.compute_for_period([1, 2], GUILD, "day", DAY, now_ms=ms(2024, 3, 8), tz=UTC)
    assert _dump(db_path) == first
    assert len(first) == 2


def test_rerun_overwrites_instead_of_adding(db_path):
    row = aggregates.AggregateRow(
        subject_id=1,
        guild_id=GUILD,
        granularity="day",
        period_label="2024-03-05",
        window_start_ts=ms(2024, 3, 5),
        window_end_ts=ms(2024, 3, 6),
        active_ms=100,
        qualifying_ms=50,
    )
    aggregates.upsert_aggregate(row, now_ms=1)
    aggregates.upsert_aggregate(row, now_ms=2)
    stored = aggregates.get_aggregate("day", 1, GUILD, "2024-03-05")
    assert (stored.active_ms, stored.created_at, stored.updated_at) == (100, 1, 1)

    changed = aggregates.AggregateRow(**{**row.__dict__, "active_ms": 300})
    aggregates.upsert_aggregate(changed, now_ms=3)
    stored = aggregates.get_aggregate("day", 1, GUILD, "2024-03-05")
    assert (stored.active_ms, stored.created_at, stored.updated_at) == (300, 1, 3)
    assert len(aggregates.period_rows("day", GUILD, "2024-03-05")) == 1


def test_one_failing_subject_does_not_stop_the_batch(db_path, monkeypatch):
    _seed()
    real = rollup.compute_subject_totals

    def flaky(subject_id, *args, **kwargs):
        if subject_id == 2:
            raise RuntimeError("boom")
        return real(subject_id, *args, **kwargs)

    monkeypatch.setattr(rollup, "compute_subject_totals", flaky)
    result = rollup.compute_for_period([1, 2, 3], GUILD, "day", DAY, now_ms=ms(2024, 3, 7), tz=UTC)

    assert result.succeeded == [1, 3]
    assert result.failed == [2]
    assert "boom" in result.errors[2]
    assert not result.ok
    assert aggregates.get_aggregate("day", 2, GUILD, "2024-03-05") is None
    assert aggregates.get_aggregate("day", 3, GUILD, "2024-03-05").active_ms == 0


def test_empty_subject_list(db_path):
    result = rollup.compute_for_period([], GUILD, "week", DAY, tz=UTC)
    assert result.ok and result.succeeded == [] and result.failed == []
    assert result.period.label == "2024-W10"


def test_live_totals(db_path):
    _seed()
    totals = tracker.get_live_totals(1, ms(2024, 3, 5), ms(2024, 3, 6), now_ms=ms(2024, 3, 7))
    assert totals.active_ms == 2 * HOUR
    with pytest.raises(InvalidWindow):
        tracker.get_live_totals(1, ms(2024, 3, 6), ms(2024, 3, 5))


def test_live_totals_degrade_when_storage_is_gone(tmp_path, monkeypatch):
    monkeypatch.setenv("BOT_DB_PATH", str(tmp_path / "no-such-dir" / "presence.sqlite3"))
    assert tracker.get_live_totals(1, 0, 10) is None
