from __future__ import annotations

import os
import sqlite3
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from . import config
from .errors import StorageUnavailable

log = logging.getLogger("presencebot.db")

SESSION_TABLES = {
    "active": "active_sessions",
    "qualifying": "qualifying_sessions",
}

AGGREGATE_TABLES = {
    "day": "daily_aggregates",
    "week": "weekly_aggregates",
    "month": "monthly_aggregates",
}


# ----------------------------
# Path resolution
# ----------------------------
def _resolved_db_path() -> str:
    env = os.environ.get("BOT_DB_PATH")
    if env:
        return os.path.abspath(env)
    return os.path.abspath(config.BOT_DB_PATH)


# ----------------------------
# Helpers
# ----------------------------
def _table_exists(con: sqlite3.Connection, name: str) -> bool:
    cur = con.cursor()
    row = cur.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name=? LIMIT 1", (name,)
    ).fetchone()
    return bool(row)


def _columns(con: sqlite3.Connection, table: str) -> list[str]:
    cur = con.cursor()
    return [r[1] for r in cur.execute(f"PRAGMA table_info({table})").fetchall()]


def _ensure_column(con: sqlite3.Connection, table: str, column: str, ddl: str) -> None:
    if not _table_exists(con, table):
        return
    if column not in _columns(con, table):
        con.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
        log.info("db.migrate added column %s.%s", table, column)


def _is_fresh_db(path: str) -> bool:
    if not os.path.exists(path):
        return True
    try:
        con = sqlite3.connect(path, timeout=5)
        try:
            return not any(_table_exists(con, t) for t in SESSION_TABLES.values())
        finally:
            con.close()
    except sqlite3.Error:
        return True


# ----------------------------
# Public: connect() / transaction() / ensure_db()
# ----------------------------
def connect() -> sqlite3.Connection:
    path = _resolved_db_path()
    try:
        con = sqlite3.connect(path, timeout=5)
        con.execute("PRAGMA foreign_keys=ON")
        con.execute("PRAGMA journal_mode=WAL")
        con.execute("PRAGMA synchronous=NORMAL")
        con.execute("PRAGMA busy_timeout=3000")
    except sqlite3.Error as e:
        raise StorageUnavailable(f"cannot open database {path}: {e}") from e
    con.row_factory = sqlite3.Row
    return con


@contextmanager
def transaction(immediate: bool = True) -> Iterator[sqlite3.Connection]:
    """
    One connection, one transaction. Commits on success, rolls back on error,
    and turns operational sqlite failures into StorageUnavailable.
    """
    con = connect()
    try:
        if immediate:
            con.execute("BEGIN IMMEDIATE")
        yield con
        con.commit()
    except sqlite3.OperationalError as e:
        con.rollback()
        raise StorageUnavailable(str(e)) from e
    except BaseException:
        con.rollback()
        raise
    finally:
        con.close()


@contextmanager
def reader() -> Iterator[sqlite3.Connection]:
    con = connect()
    try:
        yield con
    except sqlite3.OperationalError as e:
        raise StorageUnavailable(str(e)) from e
    finally:
        con.close()


def _session_ddl(table: str) -> str:
    return f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id         INTEGER PRIMARY KEY AUTOINCREMENT,
            subject_id INTEGER NOT NULL,
            guild_id   INTEGER NOT NULL,
            start_ts   INTEGER NOT NULL,
            end_ts     INTEGER,
            payload    TEXT
        )
        """


def _aggregate_ddl(table: str) -> str:
    return f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            subject_id      INTEGER NOT NULL,
            guild_id        INTEGER NOT NULL,
            period_label    TEXT    NOT NULL,
            window_start_ts INTEGER NOT NULL,
            window_end_ts   INTEGER NOT NULL,
            active_ms       INTEGER NOT NULL DEFAULT 0,
            qualifying_ms   INTEGER NOT NULL DEFAULT 0,
            qualifying_while_active_ms INTEGER NOT NULL DEFAULT 0,
            created_at      INTEGER NOT NULL,
            updated_at      INTEGER NOT NULL,
            UNIQUE(subject_id, guild_id, period_label)
        )
        """


def ensure_db(path: Optional[str] = None) -> None:
    """
    Idempotently create/upgrade the session and aggregate tables.

    With ``DB_REQUIRE_PERSISTENCE=1`` a missing file, or one without the
    session tables, is refused before anything is created.
    """
    path = path or _resolved_db_path()
    if os.getenv("DB_REQUIRE_PERSISTENCE") == "1" and _is_fresh_db(path):
        raise StorageUnavailable(
            f"Refusing to start on fresh DB: {path}. "
            "Set BOT_DB_PATH to a persistent location (e.g. a Docker volume) "
            "or unset DB_REQUIRE_PERSISTENCE."
        )
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    try:
        con = sqlite3.connect(path, timeout=5)
    except sqlite3.Error as e:
        raise StorageUnavailable(f"cannot open database {path}: {e}") from e
    try:
        cur = con.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        journal = cur.execute("PRAGMA journal_mode").fetchone()[0]
        cur.execute("PRAGMA synchronous=NORMAL")
        cur.execute("PRAGMA busy_timeout=3000")

        try:
            size = os.stat(path).st_size
        except FileNotFoundError:
            size = 0
        log.info("db.open path=%s size=%d journal=%s", path, size, journal)

        # ========== sessions ==========
        for table in SESSION_TABLES.values():
            cur.execute(_session_ddl(table))
            _ensure_column(con, table, "payload", "TEXT")
            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_subject_start ON {table} (subject_id, start_ts)"
            )
            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_end ON {table} (end_ts)"
            )
            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_guild_start ON {table} (guild_id, start_ts)"
            )

        # ========== period aggregates ==========
        for table in AGGREGATE_TABLES.values():
            cur.execute(_aggregate_ddl(table))
            _ensure_column(
                con, table, "qualifying_while_active_ms", "INTEGER NOT NULL DEFAULT 0"
            )
            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_guild_label ON {table} (guild_id, period_label)"
            )

        con.commit()
    except sqlite3.OperationalError as e:
        raise StorageUnavailable(str(e)) from e
    finally:
        con.close()
