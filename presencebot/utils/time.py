from __future__ import annotations
import time
from datetime import datetime, timedelta, timezone
from ..config import LOCAL_TZ

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MS = timedelta(milliseconds=1)

def now_ms() -> int:
    return time.time_ns() // 1_000_000

def now_local() -> datetime:
    return datetime.now(tz=LOCAL_TZ)

def to_ms(dt: datetime) -> int:
    """Epoch milliseconds; naive datetimes are taken as local time."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=LOCAL_TZ)
    return (dt - _EPOCH) // _MS

def from_ms(ms: int, tz=None) -> datetime:
    return (_EPOCH + timedelta(milliseconds=ms)).astimezone(tz or LOCAL_TZ)

def to_iso(ms: int) -> str:
    return from_ms(ms).isoformat(timespec="seconds")
