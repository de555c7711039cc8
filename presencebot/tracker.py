"""Entry points used by the observation source and the reporting layer."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from .errors import StorageUnavailable
from .models import sessions
from .models.aggregates import RankedRow
from .models.sessions import Session, Transition
from .utils import ranking, rollup
from .utils.rollup import SubjectTotals

log = logging.getLogger(__name__)


def record_observation(
    subject_id: int,
    guild_id: int,
    timestamp_ms: int,
    active: bool,
    qualifying: bool,
    qualifying_payload: Optional[str] = None,
) -> Tuple[Transition, ...]:
    return sessions.apply_observation(
        subject_id, guild_id, timestamp_ms, active, qualifying, qualifying_payload
    )


def get_sessions_between(subject_id: int, kind: str, start_ms: int, end_ms: int) -> List[Session]:
    return sessions.sessions_between(subject_id, kind, start_ms, end_ms)


def get_live_totals(
    subject_id: int, start_ms: int, end_ms: int, *, now_ms: Optional[int] = None
) -> Optional[SubjectTotals]:
    """Totals computed on demand; None when storage cannot be read."""
    try:
        return rollup.compute_subject_totals(subject_id, start_ms, end_ms, now_ms)
    except StorageUnavailable as e:
        log.warning("tracker: live totals unavailable subject=%s: %s", subject_id, e)
        return None


def get_top_n(
    guild_id: int,
    period_label: str,
    metric: str,
    limit: int,
    *,
    now_ms: Optional[int] = None,
    subject_ids: Optional[Iterable[int]] = None,
) -> List[RankedRow]:
    return ranking.top_n(guild_id, period_label, metric, limit, now_ms=now_ms, subject_ids=subject_ids)


__all__ = ["get_live_totals", "get_sessions_between", "get_top_n", "record_observation"]
