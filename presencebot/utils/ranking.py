from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ..errors import StorageUnavailable
from ..models import aggregates, sessions
from ..models.aggregates import RankedRow, normalize_metric
from . import rollup
from .periods import Period, period_from_label
from .time import now_ms as _now_ms

log = logging.getLogger(__name__)


def _live_rows(
    guild_id: int, period: Period, now: int, subject_ids: Optional[Iterable[int]] = None
) -> List[RankedRow]:
    # sessions are keyed per subject, so members whose sessions were opened
    # from another guild only show up when passed in explicitly
    ids = set(sessions.subjects_in_window(guild_id, period.start_ms, period.end_ms))
    ids.update(int(i) for i in subject_ids or ())
    rows: List[RankedRow] = []
    for sid in sorted(ids):
        t = rollup.compute_subject_totals(sid, period.start_ms, period.end_ms, now)
        rows.append(
            RankedRow(
                subject_id=t.subject_id,
                active_ms=t.active_ms,
                qualifying_ms=t.qualifying_ms,
                qualifying_while_active_ms=t.qualifying_while_active_ms,
            )
        )
    return rows


def live_top_n(
    guild_id: int,
    period: Period,
    metric: str,
    limit: int,
    *,
    now_ms: Optional[int] = None,
    subject_ids: Optional[Iterable[int]] = None,
) -> List[RankedRow]:
    """
    Rank a period straight from the raw sessions without persisting anything.
    ``subject_ids`` adds subjects to the ones with sessions opened in this guild,
    the same set a rollup of the guild would store.
    Storage trouble degrades to an empty ranking.
    """
    metric = normalize_metric(metric)
    now = _now_ms() if now_ms is None else int(now_ms)
    try:
        rows = _live_rows(guild_id, period, now, subject_ids)
    except StorageUnavailable as e:
        log.warning(
            "ranking: live fallback unavailable guild=%s label=%s: %s",
            guild_id,
            period.label,
            e,
        )
        return []
    rows.sort(key=lambda r: (-r.metric(metric), r.subject_id))
    return rows[: max(1, int(limit))]


def top_n(
    guild_id: int,
    period_label: str,
    metric: str,
    limit: int,
    *,
    now_ms: Optional[int] = None,
    tz=None,
    subject_ids: Optional[Iterable[int]] = None,
) -> List[RankedRow]:
    """
    Top ``limit`` subjects of a period by ``metric`` (descending, ties by
    ascending subject id).

    Closed periods read the stored rollup rows. The period still running is
    computed live from sessions, so it is never empty just because its rollup
    has not happened yet. ``subject_ids`` only matters for the live path; stored
    rows already hold whoever was rolled up.
    """
    metric = normalize_metric(metric)
    period = period_from_label(period_label, tz)
    now = _now_ms() if now_ms is None else int(now_ms)
    if not period.is_closed(now):
        return live_top_n(guild_id, period, metric, limit, now_ms=now, subject_ids=subject_ids)
    return aggregates.top_n(period.granularity, guild_id, period.label, metric, limit)


__all__ = ["live_top_n", "top_n"]
