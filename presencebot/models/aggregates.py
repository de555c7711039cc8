from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import List, Optional

from ..db import AGGREGATE_TABLES, reader, transaction
from ..utils.time import now_ms as _now_ms

log = logging.getLogger(__name__)

# public metric name -> column
METRIC_COLUMNS = {
    "active": "active_ms",
    "qualifying": "qualifying_ms",
    "qualifying_while_active": "qualifying_while_active_ms",
}
METRIC_ALIASES = {
    "online": "active",
    "status": "qualifying",
}


@dataclass(frozen=True)
class AggregateRow:
    subject_id: int
    guild_id: int
    granularity: str
    period_label: str
    window_start_ts: int
    window_end_ts: int
    active_ms: int
    qualifying_ms: int
    qualifying_while_active_ms: int = 0
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


@dataclass(frozen=True)
class RankedRow:
    subject_id: int
    active_ms: int
    qualifying_ms: int
    qualifying_while_active_ms: int

    def metric(self, name: str) -> int:
        return int(getattr(self, METRIC_COLUMNS[normalize_metric(name)]))


def normalize_metric(metric: str) -> str:
    m = (metric or "").strip().lower()
    m = METRIC_ALIASES.get(m, m)
    if m not in METRIC_COLUMNS:
        raise ValueError(f"unknown metric: {metric!r}")
    return m


def _table(granularity: str) -> str:
    try:
        return AGGREGATE_TABLES[granularity]
    except KeyError:
        raise ValueError(f"unknown granularity: {granularity!r}") from None


def upsert_aggregate(row: AggregateRow, *, now_ms: Optional[int] = None) -> None:
    """
    Insert or overwrite one (subject, guild, label) row in a single statement.
    Values are replaced, never added to. ``created_at`` is kept and ``updated_at``
    only moves when a stored value actually changed.
    """
    ts = _now_ms() if now_ms is None else int(now_ms)
    table = _table(row.granularity)
    with transaction(immediate=False) as con:
        con.execute(
            f"""
            INSERT INTO {table} (
                subject_id, guild_id, period_label, window_start_ts, window_end_ts,
                active_ms, qualifying_ms, qualifying_while_active_ms, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(subject_id, guild_id, period_label) DO UPDATE SET
                updated_at = CASE
                    WHEN {table}.window_start_ts = excluded.window_start_ts
                     AND {table}.window_end_ts = excluded.window_end_ts
                     AND {table}.active_ms = excluded.active_ms
                     AND {table}.qualifying_ms = excluded.qualifying_ms
                     AND {table}.qualifying_while_active_ms = excluded.qualifying_while_active_ms
                    THEN {table}.updated_at
                    ELSE excluded.updated_at
                END,
                window_start_ts = excluded.window_start_ts,
                window_end_ts = excluded.window_end_ts,
                active_ms = excluded.active_ms,
                qualifying_ms = excluded.qualifying_ms,
                qualifying_while_active_ms = excluded.qualifying_while_active_ms
            """,
            (
                row.subject_id,
                row.guild_id,
                row.period_label,
                row.window_start_ts,
                row.window_end_ts,
                int(row.active_ms),
                int(row.qualifying_ms),
                int(row.qualifying_while_active_ms),
                ts,
                ts,
            ),
        )


def _row_to_aggregate(granularity: str, r: sqlite3.Row) -> AggregateRow:
    return AggregateRow(
        subject_id=int(r["subject_id"]),
        guild_id=int(r["guild_id"]),
        granularity=granularity,
        period_label=str(r["period_label"]),
        window_start_ts=int(r["window_start_ts"]),
        window_end_ts=int(r["window_end_ts"]),
        active_ms=int(r["active_ms"]),
        qualifying_ms=int(r["qualifying_ms"]),
        qualifying_while_active_ms=int(r["qualifying_while_active_ms"] or 0),
        created_at=int(r["created_at"]),
        updated_at=int(r["updated_at"]),
    )


def get_aggregate(
    granularity: str, subject_id: int, guild_id: int, period_label: str
) -> Optional[AggregateRow]:
    with reader() as con:
        r = con.execute(
            f"""
            SELECT * FROM {_table(granularity)}
            WHERE subject_id = ? AND guild_id = ? AND period_label = ?
            """,
            (subject_id, guild_id, period_label),
        ).fetchone()
    return _row_to_aggregate(granularity, r) if r else None


def period_rows(granularity: str, guild_id: int, period_label: str) -> List[AggregateRow]:
    """Every stored row for one guild/label, by subject id."""
    with reader() as con:
        rows = con.execute(
            f"""
            SELECT * FROM {_table(granularity)}
            WHERE guild_id = ? AND period_label = ?
            ORDER BY subject_id ASC
            """,
            (guild_id, period_label),
        ).fetchall()
    return [_row_to_aggregate(granularity, r) for r in rows]


def top_n(
    granularity: str, guild_id: int, period_label: str, metric: str, limit: int
) -> List[RankedRow]:
    """Stored rows ranked by ``metric`` descending, ties by ascending subject id."""
    col = METRIC_COLUMNS[normalize_metric(metric)]
    with reader() as con:
        rows = con.execute(
            f"""
            SELECT subject_id, active_ms, qualifying_ms, qualifying_while_active_ms
            FROM {_table(granularity)}
            WHERE guild_id = ? AND period_label = ?
            ORDER BY {col} DESC, subject_id ASC
            LIMIT ?
            """,
            (guild_id, period_label, max(1, int(limit))),
        ).fetchall()
    return [
        RankedRow(
            subject_id=int(r["subject_id"]),
            active_ms=int(r["active_ms"]),
            qualifying_ms=int(r["qualifying_ms"]),
            qualifying_while_active_ms=int(r["qualifying_while_active_ms"] or 0),
        )
        for r in rows
    ]


__all__ = [
    "AggregateRow",
    "METRIC_ALIASES",
    "METRIC_COLUMNS",
    "RankedRow",
    "get_aggregate",
    "normalize_metric",
    "period_rows",
    "top_n",
    "upsert_aggregate",
]
