from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..db import SESSION_TABLES, reader, transaction
from ..errors import StaleObservation
from ..utils.intervals import check_window

log = logging.getLogger(__name__)

KINDS = ("active", "qualifying")


@dataclass(frozen=True)
class Session:
    id: int
    kind: str
    subject_id: int
    guild_id: int
    start_ts: int
    end_ts: Optional[int]
    payload: Optional[str] = None

    @property
    def ongoing(self) -> bool:
        return self.end_ts is None


@dataclass(frozen=True)
class Transition:
    kind: str
    action: str  # "open" | "close"
    ts: int


def _table(kind: str) -> str:
    try:
        return SESSION_TABLES[kind]
    except KeyError:
        raise ValueError(f"unknown session kind: {kind!r}") from None


def _row_to_session(kind: str, row: sqlite3.Row) -> Session:
    return Session(
        id=int(row["id"]),
        kind=kind,
        subject_id=int(row["subject_id"]),
        guild_id=int(row["guild_id"]),
        start_ts=int(row["start_ts"]),
        end_ts=None if row["end_ts"] is None else int(row["end_ts"]),
        payload=row["payload"],
    )


def _open_row(con: sqlite3.Connection, kind: str, subject_id: int) -> Optional[sqlite3.Row]:
    return con.execute(
        f"""
        SELECT * FROM {_table(kind)}
        WHERE subject_id = ? AND end_ts IS NULL
        ORDER BY start_ts DESC LIMIT 1
        """,
        (subject_id,),
    ).fetchone()


def _last_end(con: sqlite3.Connection, kind: str, subject_id: int) -> Optional[int]:
    row = con.execute(
        f"SELECT MAX(end_ts) FROM {_table(kind)} WHERE subject_id = ?",
        (subject_id,),
    ).fetchone()
    return None if row is None or row[0] is None else int(row[0])


def _plan(
    con: sqlite3.Connection, kind: str, subject_id: int, ts: int, want_open: bool
) -> Tuple[Optional[str], Optional[sqlite3.Row]]:
    """Decide what one kind needs: ("open"|"close"|None, open_row). Raises on stale ts."""
    open_row = _open_row(con, kind, subject_id)
    if want_open:
        if open_row is not None:
            return None, open_row
        last_end = _last_end(con, kind, subject_id)
        if last_end is not None and ts < last_end:
            raise StaleObservation(subject_id, kind, ts, last_end)
        return "open", None
    if open_row is None:
        return None, None
    if ts < int(open_row["start_ts"]):
        raise StaleObservation(subject_id, kind, ts, int(open_row["start_ts"]))
    return "close", open_row


def apply_observation(
    subject_id: int,
    guild_id: int,
    ts: int,
    active: bool,
    qualifying: bool,
    payload: Optional[str] = None,
) -> Tuple[Transition, ...]:
    """
    Fold one presence snapshot into the stored sessions.

    Opens a session per kind on entry, closes it on exit, and does nothing when
    the reported state matches what is stored. Qualifying without active is
    treated as not qualifying. Both kinds are checked before anything is written,
    so a stale observation leaves storage untouched.
    Returns the transitions that were written (empty for a no-op).
    """
    qualifying = bool(qualifying) and bool(active)
    wanted = {"active": bool(active), "qualifying": qualifying}

    with transaction() as con:
        plans = {k: _plan(con, k, subject_id, ts, wanted[k]) for k in KINDS}
        # a qualifying session may not start before the active one it sits in
        _, active_row = plans["active"]
        if plans["qualifying"][0] == "open" and active_row is not None:
            if ts < int(active_row["start_ts"]):
                raise StaleObservation(subject_id, "active", ts, int(active_row["start_ts"]))

        done: List[Transition] = []
        # close inner kind first, open outer kind first
        for kind in ("qualifying", "active"):
            action, row = plans[kind]
            if action == "close":
                con.execute(
                    f"UPDATE {_table(kind)} SET end_ts = ? WHERE id = ?",
                    (ts, int(row["id"])),
                )
                done.append(Transition(kind, "close", ts))
        for kind in ("active", "qualifying"):
            action, _ = plans[kind]
            if action == "open":
                con.execute(
                    f"""
                    INSERT INTO {_table(kind)} (subject_id, guild_id, start_ts, payload)
                    VALUES (?, ?, ?, ?)
                    """,
                    (subject_id, guild_id, ts, payload if kind == "qualifying" else None),
                )
                done.append(Transition(kind, "open", ts))

    if done:
        log.debug(
            "sessions: subject=%s guild=%s %s",
            subject_id,
            guild_id,
            ", ".join(f"{t.kind}.{t.action}" for t in done),
        )
    return tuple(done)


def sessions_between(
    subject_id: int, kind: str, window_start: int, window_end: int
) -> List[Session]:
    """
    Sessions of one kind touching ``[window_start, window_end]``, oldest first.
    Ongoing sessions come back with ``end_ts=None``; callers decide what "now" is.
    """
    check_window(window_start, window_end)
    with reader() as con:
        rows = con.execute(
            f"""
            SELECT * FROM {_table(kind)}
            WHERE subject_id = ? AND start_ts <= ? AND (end_ts IS NULL OR end_ts >= ?)
            ORDER BY start_ts ASC, id ASC
            """,
            (subject_id, window_end, window_start),
        ).fetchall()
    return [_row_to_session(kind, r) for r in rows]


def open_session(subject_id: int, kind: str) -> Optional[Session]:
    with reader() as con:
        row = _open_row(con, kind, subject_id)
    return _row_to_session(kind, row) if row else None


def subjects_in_window(guild_id: int, window_start: int, window_end: int) -> List[int]:
    """Subjects of a guild with any session touching the window, ascending."""
    check_window(window_start, window_end)
    parts = " UNION ".join(
        f"""
        SELECT subject_id FROM {table}
        WHERE guild_id = ? AND start_ts <= ? AND (end_ts IS NULL OR end_ts >= ?)
        """
        for table in SESSION_TABLES.values()
    )
    params: List[int] = []
    for _ in SESSION_TABLES:
        params.extend((guild_id, window_end, window_start))
    with reader() as con:
        rows = con.execute(f"SELECT subject_id FROM ({parts}) ORDER BY subject_id", params).fetchall()
    return [int(r[0]) for r in rows]


def count_sessions(subject_id: Optional[int] = None, kind: Optional[str] = None) -> int:
    """Row count over one or both session tables (optionally one subject)."""
    kinds = (kind,) if kind else KINDS
    total = 0
    with reader() as con:
        for k in kinds:
            if subject_id is None:
                row = con.execute(f"SELECT COUNT(1) FROM {_table(k)}").fetchone()
            else:
                row = con.execute(
                    f"SELECT COUNT(1) FROM {_table(k)} WHERE subject_id = ?", (subject_id,)
                ).fetchone()
            total += int(row[0] or 0)
    return total


__all__ = [
    "KINDS",
    "Session",
    "Transition",
    "apply_observation",
    "count_sessions",
    "open_session",
    "sessions_between",
    "subjects_in_window",
]
