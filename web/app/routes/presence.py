from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query

from presencebot import tracker
from presencebot.errors import InvalidWindow, StorageUnavailable
from presencebot.models import sessions
from presencebot.models.aggregates import normalize_metric
from presencebot.utils.periods import period_for, period_from_label
from presencebot.utils.time import now_local, to_iso

router = APIRouter(prefix="/api/presence", tags=["presence"])


def _unavailable(e: StorageUnavailable) -> HTTPException:
    return HTTPException(status_code=503, detail=f"storage unavailable: {e}")


@router.get("/rank")
def rank(
    guild_id: int,
    period: str = "daily",
    label: Optional[str] = None,
    metric: str = "qualifying",
    limit: int = Query(10, ge=1, le=50),
) -> Dict[str, Any]:
    try:
        metric = normalize_metric(metric)
        p = period_from_label(label) if label else period_for(period, now_local())
        rows = tracker.get_top_n(guild_id, p.label, metric, limit)
    except StorageUnavailable as e:
        raise _unavailable(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "guild_id": guild_id,
        "period": p.granularity,
        "label": p.label,
        "metric": metric,
        "start": to_iso(p.start_ms),
        "end": to_iso(p.end_ms),
        "rows": [dict(asdict(r), rank=i) for i, r in enumerate(rows, start=1)],
    }


@router.get("/sessions/{subject_id}")
def subject_sessions(
    subject_id: int,
    start_ms: int,
    end_ms: int,
    kind: str = "active",
) -> Dict[str, Any]:
    if kind not in sessions.KINDS:
        raise HTTPException(status_code=400, detail=f"unknown kind: {kind}")
    try:
        items = tracker.get_sessions_between(subject_id, kind, start_ms, end_ms)
    except InvalidWindow as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageUnavailable as e:
        raise _unavailable(e)
    return {
        "subject_id": subject_id,
        "kind": kind,
        "sessions": [
            {
                "start_ts": s.start_ts,
                "end_ts": s.end_ts,
                "ongoing": s.ongoing,
                "payload": s.payload,
            }
            for s in items
        ],
    }


@router.get("/totals/{subject_id}")
def subject_totals(subject_id: int, start_ms: int, end_ms: int) -> Dict[str, Any]:
    try:
        if sessions.count_sessions(subject_id) == 0:
            raise HTTPException(status_code=404, detail="no sessions for subject")
    except StorageUnavailable as e:
        raise _unavailable(e)
    try:
        totals = tracker.get_live_totals(subject_id, start_ms, end_ms)
    except InvalidWindow as e:
        raise HTTPException(status_code=400, detail=str(e))
    if totals is None:
        raise HTTPException(status_code=503, detail="storage unavailable")
    return asdict(totals)
