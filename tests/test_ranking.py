from __future__ import annotations

from datetime import date

import pytest
from dateutil import tz

from presencebot import tracker
from presencebot.errors import StorageUnavailable
from presencebot.models import aggregates, sessions
from presencebot.utils import ranking, rollup

from .conftest import HOUR, MINUTE, ms

GUILD = 9
UTC = tz.UTC


def _row(subject_id, active_ms, qualifying_ms, label="2024-03-05"):
    return aggregates.AggregateRow(
        subject_id=subject_id,
        guild_id=GUILD,
        granularity="day",
        period_label=label,
        window_start_ts=ms(2024, 3, 5),
        window_end_ts=ms(2024, 3, 6),
        active_ms=active_ms,
        qualifying_ms=qualifying_ms,
    )


def test_ties_break_by_ascending_subject_id(db_path):
    for sid in (30, 10, 20):
        aggregates.upsert_aggregate(_row(sid, 2 * HOUR, 60 * MINUTE))
    aggregates.upsert_aggregate(_row(5, HOUR, 30 * MINUTE))

    rows = aggregates.top_n("day", GUILD, "2024-03-05", "qualifying", 10)
    assert [r.subject_id for r in rows] == [10, 20, 30, 5]


def test_closed_period_reads_stored_rows(db_path):
    aggregates.upsert_aggregate(_row(1, HOUR, 10 * MINUTE))
    aggregates.upsert_aggregate(_row(2, 2 * HOUR, 5 * MINUTE))

    by_active = ranking.top_n(GUILD, "2024-03-05", "online", 5, now_ms=ms(2024, 3, 10), tz=UTC)
    assert [r.subject_id for r in by_active] == [2, 1]
    by_status = ranking.top_n(GUILD, "2024-03-05", "status", 1, now_ms=ms(2024, 3, 10), tz=UTC)
    assert [r.subject_id for r in by_status] == [1]


def test_closed_period_without_rollup_is_not_recomputed(db_path):
    sessions.apply_observation(1, GUILD, ms(2024, 3, 5, 9), True, True)
    sessions.apply_observation(1, GUILD, ms(2024, 3, 5, 10), False, False)
    assert ranking.top_n(GUILD, "2024-03-05", "active", 5, now_ms=ms(2024, 3, 10), tz=UTC) == []


def test_open_period_is_ranked_live(db_path):
    day_start = ms(2024, 3, 5)
    sessions.apply_observation(1, GUILD, day_start + HOUR, True, True, "a")
    sessions.apply_observation(2, GUILD, day_start + HOUR, True, False)
    sessions.apply_observation(3, GUILD + 1, day_start + HOUR, True, True, "other guild")
    now = day_start + 3 * HOUR

    rows = ranking.top_n(GUILD, "2024-03-05", "qualifying", 10, now_ms=now, tz=UTC)
    assert [(r.subject_id, r.active_ms, r.qualifying_ms) for r in rows] == [
        (1, 2 * HOUR, 2 * HOUR),
        (2, 2 * HOUR, 0),
    ]
    # nothing was persisted
    assert aggregates.period_rows("day", GUILD, "2024-03-05") == []


def test_live_ranking_takes_the_watched_subject_set(db_path):
    day_start = ms(2024, 3, 5)
    # subject 3 is watched in GUILD but its sessions were opened from GUILD + 1
    sessions.apply_observation(1, GUILD, day_start + HOUR, True, False)
    sessions.apply_observation(3, GUILD + 1, day_start + HOUR, True, True)
    now = day_start + 2 * HOUR

    rows = ranking.top_n(GUILD, "2024-03-05", "active", 10, now_ms=now, tz=UTC)
    assert [r.subject_id for r in rows] == [1]

    rows = tracker.get_top_n(GUILD, "2024-03-05", "active", 10, now_ms=now, subject_ids=[3, 4])
    assert [(r.subject_id, r.active_ms) for r in rows] == [(1, HOUR), (3, HOUR), (4, 0)]

    # the stored rollup over the same subjects ranks identically
    rollup.compute_for_period([1, 3, 4], GUILD, "day", date(2024, 3, 5), now_ms=now, tz=UTC)
    stored = aggregates.top_n("day", GUILD, "2024-03-05", "active", 10)
    live = ranking.top_n(GUILD, "2024-03-05", "active", 10, now_ms=now, tz=UTC, subject_ids=[3, 4])
    assert live == stored


def test_live_and_stored_paths_agree(db_path):
    day_start = ms(2024, 3, 5)
    for sid, minutes in ((1, 45), (2, 90), (3, 45)):
        sessions.apply_observation(sid, GUILD, day_start + HOUR, True, True)
        sessions.apply_observation(sid, GUILD, day_start + HOUR + minutes * MINUTE, False, False)
    now = day_start + 12 * HOUR

    live = ranking.top_n(GUILD, "2024-03-05", "active", 10, now_ms=now, tz=UTC)
    rollup.compute_for_period([1, 2, 3], GUILD, "day", date(2024, 3, 5), now_ms=now, tz=UTC)
    stored = aggregates.top_n("day", GUILD, "2024-03-05", "active", 10)
    assert live == stored
    assert [r.subject_id for r in live] == [2, 1, 3]


def test_live_fallback_degrades_to_empty(db_path, monkeypatch):
    def unavailable(*args, **kwargs):
        raise StorageUnavailable("disk gone")

    monkeypatch.setattr(sessions, "subjects_in_window", unavailable)
    rows = ranking.top_n(GUILD, "2024-03-05", "active", 10, now_ms=ms(2024, 3, 5, 12), tz=UTC)
    assert rows == []


def test_unknown_metric_and_label_are_rejected(db_path):
    with pytest.raises(ValueError):
        ranking.top_n(GUILD, "2024-03-05", "xp", 10, tz=UTC)
    with pytest.raises(ValueError):
        tracker.get_top_n(GUILD, "last tuesday", "active", 10)


def test_metric_reads_by_name():
    r = aggregates.RankedRow(subject_id=1, active_ms=3, qualifying_ms=2, qualifying_while_active_ms=1)
    assert r.metric("online") == 3
    assert r.metric("status") == 2
    assert r.metric("qualifying_while_active") == 1
