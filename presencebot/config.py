from __future__ import annotations
import os
from typing import List, Optional
from dateutil import tz


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool = True) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str) -> List[str]:
    raw = os.getenv(name) or default
    return [tok.strip().lower() for tok in raw.split(",") if tok.strip()]


DATA_DIR = os.getenv("DATA_DIR", "./data")

TZ_NAME = os.getenv("TZ", "UTC")
TZ = tz.gettz(TZ_NAME) or tz.UTC
LOCAL_TZ = TZ

BOT_DB_PATH = os.getenv("BOT_DB_PATH", os.path.join(DATA_DIR, "presence.sqlite3"))

# ---- tracking ----
WATCH_ROLE_ID = _env_int("WATCH_ROLE_ID")
DESIRED_STATUS_TEXT = (os.getenv("DESIRED_STATUS_TEXT") or "").strip()
ACTIVE_STATUSES = _env_csv("ACTIVE_STATUSES", "online")
CHECK_INTERVAL_MINUTES = max(1, _env_int("CHECK_INTERVAL_MINUTES", 5) or 5)

# ---- reporting / rollups ----
TOP_N_DEFAULT = _env_int("TOP_N_DEFAULT", 10) or 10
REPORT_CHANNEL_ID = _env_int("REPORT_CHANNEL_ID")
SUMMARY_METRIC = (os.getenv("SUMMARY_METRIC") or "qualifying").strip().lower()
ENABLE_DAILY_SUMMARY = _env_flag("ENABLE_DAILY_SUMMARY")
ENABLE_WEEKLY_SUMMARY = _env_flag("ENABLE_WEEKLY_SUMMARY")
ENABLE_MONTHLY_SUMMARY = _env_flag("ENABLE_MONTHLY_SUMMARY")
ROLLUP_WORKERS = max(1, _env_int("ROLLUP_WORKERS", 4) or 4)

LOCALE = (os.getenv("LOCALE") or "en").strip().lower()
