from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from dateutil import tz

from presencebot.utils.periods import (
    period_at,
    period_for,
    period_from_label,
    previous_period,
    week_label,
)

from .conftest import ms

UTC = tz.UTC


def test_day_bounds_and_label():
    p = period_for("day", date(2024, 3, 5), UTC)
    assert p.label == "2024-03-05"
    assert (p.start_ms, p.end_ms) == (ms(2024, 3, 5), ms(2024, 3, 6))


def test_sunday_takes_its_mondays_week_label():
    # 2024-01-01 is a Monday
    assert week_label(date(2024, 1, 7)) == "2024-W01"
    assert week_label(date(2024, 1, 1)) == "2024-W01"
    assert week_label(date(2024, 1, 8)) == "2024-W02"


def test_week_bounds_start_on_monday():
    p = period_for("week", date(2024, 1, 7), UTC)
    assert p.label == "2024-W01"
    assert (p.start_ms, p.end_ms) == (ms(2024, 1, 1), ms(2024, 1, 8))


def test_week_spanning_new_year_keeps_mondays_year():
    # Monday 2024-12-30 starts the week holding 2025-01-01
    p = period_for("week", date(2025, 1, 1), UTC)
    assert p.label == "2024-W53"
    assert p.start_ms == ms(2024, 12, 30)


def test_month_bounds():
    p = period_for("month", date(2024, 12, 31), UTC)
    assert p.label == "2024-12"
    assert (p.start_ms, p.end_ms) == (ms(2024, 12, 1), ms(2025, 1, 1))


def test_granularity_aliases():
    assert period_for("daily", date(2024, 3, 5), UTC) == period_for("day", date(2024, 3, 5), UTC)
    with pytest.raises(ValueError):
        period_for("hourly", date(2024, 3, 5), UTC)


def test_aware_datetime_uses_target_zone():
    istanbul = tz.gettz("Europe/Istanbul")
    # 22:30 UTC on the 5th is already the 6th in Istanbul
    ref = datetime(2024, 3, 5, 22, 30, tzinfo=timezone.utc)
    assert period_for("day", ref, istanbul).label == "2024-03-06"
    assert period_for("day", ref, UTC).label == "2024-03-05"


@pytest.mark.parametrize("label", ["2024-03-05", "2024-W01", "2024-W53", "2025-W10", "2024-02"])
def test_labels_parse_back_to_the_same_period(label):
    p = period_from_label(label, UTC)
    assert p.label == label
    assert period_at(p.granularity, p.start_ms, UTC) == p
    assert period_at(p.granularity, p.end_ms - 1, UTC) == p


@pytest.mark.parametrize("label", ["2024-W00", "2024-W54", "2023-W54", "yesterday", "2024-13", ""])
def test_bad_labels_are_rejected(label):
    with pytest.raises(ValueError):
        period_from_label(label, UTC)


def test_previous_period():
    ref = date(2024, 3, 1)
    assert previous_period("day", ref, UTC).label == "2024-02-29"
    assert previous_period("month", ref, UTC).label == "2024-02"
    assert previous_period("week", date(2024, 1, 8), UTC).label == "2024-W01"


def test_is_closed_is_half_open():
    p = period_for("day", date(2024, 3, 5), UTC)
    assert not p.is_closed(p.end_ms - 1)
    assert p.is_closed(p.end_ms)
    assert p.contains(p.start_ms) and not p.contains(p.end_ms)
