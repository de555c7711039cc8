from __future__ import annotations

import os
from datetime import datetime, timezone

os.environ["TZ"] = "UTC"
os.environ.pop("DB_REQUIRE_PERSISTENCE", None)
os.environ["LOCALE"] = "en"

import pytest  # noqa: E402

from presencebot.db import ensure_db  # noqa: E402

HOUR = 3_600_000
MINUTE = 60_000


def ms(*args: int) -> int:
    """Epoch ms of a UTC wall-clock time."""
    return int(datetime(*args, tzinfo=timezone.utc).timestamp()) * 1000


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "presence.sqlite3")
    monkeypatch.setenv("BOT_DB_PATH", path)
    ensure_db(path)
    return path
