from __future__ import annotations


class PresenceError(Exception):
    """Base class for presence-tracking errors."""


class InvalidWindow(PresenceError, ValueError):
    """A query window with start after end. Always a caller bug."""

    def __init__(self, window_start: int, window_end: int) -> None:
        super().__init__(f"invalid window: start={window_start} > end={window_end}")
        self.window_start = window_start
        self.window_end = window_end


class StorageUnavailable(PresenceError, RuntimeError):
    """The session/aggregate database could not be read or written."""


class StaleObservation(PresenceError, ValueError):
    """An observation would move a session boundary backwards in time."""

    def __init__(self, subject_id: int, kind: str, ts: int, boundary: int) -> None:
        super().__init__(
            f"stale observation for subject {subject_id} ({kind}): ts={ts} < boundary={boundary}"
        )
        self.subject_id = subject_id
        self.kind = kind
        self.ts = ts
        self.boundary = boundary


__all__ = ["InvalidWindow", "PresenceError", "StaleObservation", "StorageUnavailable"]
