from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import discord

from .. import config
from ..models import sessions
from ..models.aggregates import normalize_metric
from .periods import Period
from .rollup import RollupResult, compute_for_period
from .time import from_ms

log = logging.getLogger(__name__)


def is_watched_member(member: discord.Member, role_id: Optional[int] = None) -> bool:
    """Humans holding the watch role; without a configured role every human counts."""
    if member.bot:
        return False
    role_id = config.WATCH_ROLE_ID if role_id is None else role_id
    if not role_id:
        return True
    return any(r.id == role_id for r in getattr(member, "roles", []) or [])


def watched_members(guild: discord.Guild) -> List[discord.Member]:
    return [m for m in guild.members if is_watched_member(m)]


def custom_status_text(member: discord.Member) -> Optional[str]:
    for act in member.activities or []:
        if isinstance(act, discord.CustomActivity):
            text = act.state or act.name
            if text:
                return str(text)
    return None


def is_active_status(member: discord.Member) -> bool:
    return str(member.status) in config.ACTIVE_STATUSES


def has_desired_status(text: Optional[str], desired: Optional[str] = None) -> bool:
    desired = config.DESIRED_STATUS_TEXT if desired is None else desired
    if not desired or not text:
        return False
    return desired.lower() in text.lower()


def summary_metric() -> str:
    """Configured default ranking metric; aliases such as ``online`` are accepted."""
    try:
        return normalize_metric(config.SUMMARY_METRIC)
    except ValueError:
        log.warning("presence: unknown SUMMARY_METRIC=%r, using qualifying", config.SUMMARY_METRIC)
        return "qualifying"


def observe(member: discord.Member) -> Tuple[bool, bool, Optional[str]]:
    """(active, qualifying, custom status text) for one member right now."""
    text = custom_status_text(member)
    active = is_active_status(member)
    return active, active and has_desired_status(text), text


def rollup_subjects(guild: discord.Guild, period: Period) -> List[int]:
    """Watched members plus anyone with sessions in the period (left the guild, lost the role)."""
    ids = {m.id for m in watched_members(guild)}
    ids.update(sessions.subjects_in_window(guild.id, period.start_ms, period.end_ms))
    return sorted(ids)


def roll_up_guild(guild: discord.Guild, period: Period) -> RollupResult:
    ids = rollup_subjects(guild, period)
    return compute_for_period(ids, guild.id, period.granularity, from_ms(period.start_ms))


__all__ = [
    "custom_status_text",
    "has_desired_status",
    "is_active_status",
    "is_watched_member",
    "observe",
    "roll_up_guild",
    "rollup_subjects",
    "summary_metric",
    "watched_members",
]
