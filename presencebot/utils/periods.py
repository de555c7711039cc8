from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from ..config import LOCAL_TZ
from .time import from_ms, to_ms

GRANULARITIES = ("day", "week", "month")

# Accept the reporting layer's words too.
GRANULARITY_ALIASES = {
    "daily": "day",
    "weekly": "week",
    "monthly": "month",
}

DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")
MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class Period:
    granularity: str
    label: str
    start_ms: int
    end_ms: int  # exclusive: first ms of the next period

    def contains(self, ts: int) -> bool:
        return self.start_ms <= ts < self.end_ms

    def is_closed(self, now: int) -> bool:
        return now >= self.end_ms


def normalize_granularity(value: str) -> str:
    g = (value or "").strip().lower()
    g = GRANULARITY_ALIASES.get(g, g)
    if g not in GRANULARITIES:
        raise ValueError(f"unknown granularity: {value!r}")
    return g


def _local_date(ref: DateLike, tz) -> date:
    if isinstance(ref, datetime):
        if ref.tzinfo is not None:
            ref = ref.astimezone(tz)
        return ref.date()
    return ref


def _midnight_ms(d: date, tz) -> int:
    return to_ms(datetime(d.year, d.month, d.day, tzinfo=tz))


def week_monday(d: date) -> date:
    return d - timedelta(days=d.weekday())


def week_label(d: date) -> str:
    """
    ``YYYY-Www`` taken from the Monday that starts ``d``'s week: the year is the
    Monday's year and the week number is ceil(day_of_year(Monday) / 7).
    """
    monday = week_monday(d)
    day_of_year = monday.timetuple().tm_yday
    week = (day_of_year + 6) // 7
    return f"{monday.year}-W{week:02d}"


def _next_month(d: date) -> date:
    return date(d.year + 1, 1, 1) if d.month == 12 else date(d.year, d.month + 1, 1)


def _build(granularity: str, first: date, after: date, label: str, tz) -> Period:
    return Period(
        granularity=granularity,
        label=label,
        start_ms=_midnight_ms(first, tz),
        end_ms=_midnight_ms(after, tz),
    )


def period_for(granularity: str, reference: DateLike, tz=None) -> Period:
    """Calendar bounds (local time) and label of the period containing ``reference``."""
    tz = tz or LOCAL_TZ
    g = normalize_granularity(granularity)
    d = _local_date(reference, tz)
    if g == "day":
        return _build(g, d, d + timedelta(days=1), d.isoformat(), tz)
    if g == "week":
        monday = week_monday(d)
        return _build(g, monday, monday + timedelta(days=7), week_label(d), tz)
    first = d.replace(day=1)
    return _build(g, first, _next_month(first), f"{d.year}-{d.month:02d}", tz)


def period_at(granularity: str, ts: int, tz=None) -> Period:
    tz = tz or LOCAL_TZ
    return period_for(granularity, from_ms(ts, tz), tz)


def previous_period(granularity: str, reference: DateLike, tz=None) -> Period:
    """The period right before the one containing ``reference``."""
    tz = tz or LOCAL_TZ
    current = period_for(granularity, reference, tz)
    return period_at(current.granularity, current.start_ms - 1, tz)


def period_from_label(label: str, tz=None) -> Period:
    """Inverse of ``period_for(...).label``; the label format picks the granularity."""
    tz = tz or LOCAL_TZ
    text = (label or "").strip()

    m = DAY_RE.match(text)
    if m:
        d = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        return period_for("day", d, tz)

    m = WEEK_RE.match(text)
    if m:
        year, week = int(m.group(1)), int(m.group(2))
        if not 1 <= week <= 53:
            raise ValueError(f"bad week label: {label!r}")
        # exactly one Monday has day_of_year in [7w-6, 7w]
        first = date(year, 1, 1) + timedelta(days=7 * (week - 1))
        monday = first + timedelta(days=(7 - first.weekday()) % 7)
        period = period_for("week", monday, tz)
        if period.label != text:
            raise ValueError(f"bad week label: {label!r}")
        return period

    m = MONTH_RE.match(text)
    if m:
        return period_for("month", date(int(m.group(1)), int(m.group(2)), 1), tz)

    raise ValueError(f"unrecognized period label: {label!r}")


__all__ = [
    "GRANULARITIES",
    "Period",
    "normalize_granularity",
    "period_at",
    "period_for",
    "period_from_label",
    "previous_period",
    "week_label",
    "week_monday",
]
