from __future__ import annotations

from typing import List, Optional, Sequence

import discord

from ..models.aggregates import RankedRow
from ..models.sessions import Session
from ..strings import S
from ..utils.periods import Period
from ..utils.rollup import SubjectTotals
from ..utils.time import from_ms

SESSION_LINES = 20


async def require_guild(inter: discord.Interaction) -> bool:
    if not inter.guild:
        if not inter.response.is_done():
            await inter.response.send_message(S("common.guild_only"), ephemeral=True)
        else:
            await inter.followup.send(S("common.guild_only"), ephemeral=True)
        return False
    return True


def format_duration(ms: int) -> str:
    total_minutes = max(0, int(ms)) // 60000
    h, m = divmod(total_minutes, 60)
    return S("duration.hm", h=h, m=m)


def ms_to_hours(ms: int) -> str:
    return f"{ms / 3_600_000:.2f}"


def format_clock(ms: int) -> str:
    return from_ms(ms).strftime("%H:%M")


def yes_no(value: bool) -> str:
    return S("common.yes") if value else S("common.no")


def member_name(guild: discord.Guild, subject_id: int) -> str:
    member = guild.get_member(subject_id)
    if member is None:
        return str(subject_id)
    return member.display_name


def session_lines(items: Sequence[Session], *, with_payload: bool = False) -> List[str]:
    lines: List[str] = []
    for i, s in enumerate(items[:SESSION_LINES], start=1):
        end = format_clock(s.end_ts) if s.end_ts is not None else S("presence.report.ongoing")
        line = f"#{i} {format_clock(s.start_ts)} - {end}"
        if with_payload:
            line += f" | {s.payload or ''}"
        lines.append(line)
    return lines


def build_report_text(
    *,
    period: Period,
    user_mention: str,
    totals: SubjectTotals,
    elapsed_ms: int,
    active_sessions: Sequence[Session],
    qualifying_sessions: Sequence[Session],
) -> str:
    online = session_lines(active_sessions)
    status = session_lines(qualifying_sessions, with_payload=True)
    offline_ms = max(0, elapsed_ms - totals.active_ms)
    return "\n".join(
        [
            S(f"presence.report.title.{period.granularity}", label=period.label),
            S("presence.report.user", user=user_mention),
            S("presence.report.online", duration=format_duration(totals.active_ms)),
            S("presence.report.offline", duration=format_duration(offline_ms)),
            S("presence.report.status", duration=format_duration(totals.qualifying_ms)),
            S(
                "presence.report.status_online",
                duration=format_duration(totals.qualifying_while_active_ms),
            ),
            "",
            S("presence.report.online_sessions", n=SESSION_LINES),
            "\n".join(online) if online else S("presence.report.no_records"),
            "",
            S("presence.report.status_sessions", n=SESSION_LINES),
            "\n".join(status) if status else S("presence.report.no_records"),
        ]
    )


def build_overview_embed(
    *, total: int, active: int, qualifying: int, noncompliant: Sequence[int]
) -> discord.Embed:
    embed = discord.Embed(
        title=S("presence.overview.title"),
        description=S(
            "presence.overview.body", total=total, active=active, qualifying=qualifying
        ),
        color=discord.Color(0x00AE86),
    )
    if noncompliant:
        embed.add_field(
            name=S("presence.overview.noncompliant"),
            value=", ".join(f"<@{uid}>" for uid in list(noncompliant)[:20]),
            inline=False,
        )
    return embed


def build_rank_embed(
    guild: discord.Guild,
    *,
    period: Period,
    metric: str,
    limit: int,
    rows: Sequence[RankedRow],
) -> Optional[discord.Embed]:
    """Leaderboard embed, or None when there is nothing to show."""
    if not rows:
        return None
    lines = [
        S(
            "presence.rank.line",
            rank=i,
            name=member_name(guild, r.subject_id),
            active=ms_to_hours(r.active_ms),
            qualifying=ms_to_hours(r.qualifying_ms),
        )
        for i, r in enumerate(rows, start=1)
    ]
    return discord.Embed(
        title=S(
            "presence.rank.title",
            period=S(f"period.{period.granularity}"),
            limit=limit,
            metric=S(f"metric.{metric}"),
            label=period.label,
        ),
        description="\n".join(lines),
        color=discord.Color(0x5865F2),
    )
