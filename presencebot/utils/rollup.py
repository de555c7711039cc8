from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .. import config
from ..models import aggregates, sessions
from .intervals import check_window, intersection_duration, sum_overlap
from .periods import DateLike, Period, period_for
from .time import now_ms as _now_ms

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubjectTotals:
    subject_id: int
    active_ms: int
    qualifying_ms: int
    qualifying_while_active_ms: int


@dataclass
class RollupResult:
    period: Period
    guild_id: int
    succeeded: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    errors: Dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def compute_subject_totals(
    subject_id: int,
    window_start: int,
    window_end: int,
    now_ms: Optional[int] = None,
) -> SubjectTotals:
    """
    Active, qualifying and qualifying-while-active time of one subject inside
    the window. Nothing is written.
    """
    check_window(window_start, window_end)
    now = _now_ms() if now_ms is None else int(now_ms)
    active = sessions.sessions_between(subject_id, "active", window_start, window_end)
    qualifying = sessions.sessions_between(subject_id, "qualifying", window_start, window_end)
    return SubjectTotals(
        subject_id=subject_id,
        active_ms=sum_overlap(active, window_start, window_end, now),
        qualifying_ms=sum_overlap(qualifying, window_start, window_end, now),
        qualifying_while_active_ms=intersection_duration(
            active, qualifying, window_start, window_end, now
        ),
    )


def _rollup_one(
    subject_id: int, guild_id: int, period: Period, now: int
) -> Tuple[int, Optional[str]]:
    try:
        totals = compute_subject_totals(subject_id, period.start_ms, period.end_ms, now)
        aggregates.upsert_aggregate(
            aggregates.AggregateRow(
                subject_id=subject_id,
                guild_id=guild_id,
                granularity=period.granularity,
                period_label=period.label,
                window_start_ts=period.start_ms,
                window_end_ts=period.end_ms,
                active_ms=totals.active_ms,
                qualifying_ms=totals.qualifying_ms,
                qualifying_while_active_ms=totals.qualifying_while_active_ms,
            ),
            now_ms=now,
        )
        return subject_id, None
    except Exception as e:
        log.exception(
            "rollup: subject failed subject=%s guild=%s label=%s",
            subject_id,
            guild_id,
            period.label,
        )
        return subject_id, f"{type(e).__name__}: {e}"


def _unique(ids: Iterable[int]) -> List[int]:
    seen = set()
    out: List[int] = []
    for sid in ids:
        sid = int(sid)
        if sid not in seen:
            seen.add(sid)
            out.append(sid)
    return out


def compute_for_period(
    subject_ids: Iterable[int],
    guild_id: int,
    granularity: str,
    reference_date: DateLike,
    *,
    now_ms: Optional[int] = None,
    workers: Optional[int] = None,
    tz=None,
) -> RollupResult:
    """
    Roll up every subject for the period containing ``reference_date``.

    One upsert per subject, keyed by (subject, guild, label), so running it again
    for the same label overwrites instead of adding. A subject that fails is
    logged and listed in ``failed``; the rest of the batch still runs.
    """
    period = period_for(granularity, reference_date, tz)
    now = _now_ms() if now_ms is None else int(now_ms)
    ids = _unique(subject_ids)
    result = RollupResult(period=period, guild_id=guild_id)
    if not ids:
        log.info("rollup: %s %s guild=%s no subjects", period.granularity, period.label, guild_id)
        return result

    max_workers = max(1, min(workers or config.ROLLUP_WORKERS, len(ids)))
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rollup") as pool:
        outcomes = list(pool.map(lambda sid: _rollup_one(sid, guild_id, period, now), ids))

    for sid, err in outcomes:
        if err is None:
            result.succeeded.append(sid)
        else:
            result.failed.append(sid)
            result.errors[sid] = err

    log.info(
        "rollup: %s %s guild=%s ok=%d failed=%d",
        period.granularity,
        period.label,
        guild_id,
        len(result.succeeded),
        len(result.failed),
    )
    return result


__all__ = ["RollupResult", "SubjectTotals", "compute_for_period", "compute_subject_totals"]
