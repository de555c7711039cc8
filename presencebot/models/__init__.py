"""SQLite-backed storage for presence sessions and period rollups."""

from . import aggregates
from . import sessions

__all__ = [
    "aggregates",
    "sessions",
]
