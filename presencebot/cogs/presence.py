from __future__ import annotations

import asyncio
import logging
from typing import List, Literal, Optional

import discord
from discord import app_commands
from discord.ext import commands, tasks

from .. import config, tracker
from ..errors import StaleObservation, StorageUnavailable
from ..strings import S
from ..ui.presence import (
    build_overview_embed as _build_overview_embed,
    build_rank_embed as _build_rank_embed,
    build_report_text as _build_report_text,
    format_duration as _fmt_duration,
    require_guild as _require_guild,
    yes_no as _yes_no,
)
from ..utils.periods import Period, period_for, previous_period
from ..utils.presence import (
    custom_status_text,
    has_desired_status,
    is_active_status,
    is_watched_member,
    observe,
    roll_up_guild,
    summary_metric,
    watched_members,
)
from ..utils.time import now_local, now_ms

log = logging.getLogger(__name__)

Granularity = Literal["day", "week", "month"]
Metric = Literal["active", "qualifying", "qualifying_while_active"]


def _record(member: discord.Member, ts: int) -> None:
    active, qualifying, text = observe(member)
    try:
        tracker.record_observation(member.id, member.guild.id, ts, active, qualifying, text)
    except StaleObservation as e:
        log.debug("presence.stale subject=%s: %s", member.id, e)


async def _sweep_guilds(guilds) -> None:
    for guild in list(guilds):
        for m in watched_members(guild):
            try:
                # stamp each member as it is read, not once per sweep
                await asyncio.to_thread(_record, m, now_ms())
            except Exception:
                log.exception("presence.poll_failed", extra={"guild_id": guild.id, "user_id": m.id})


class PresenceCog(commands.GroupCog, name="presence", description="Presence + custom status tracking"):
    def __init__(self, bot: commands.Bot):
        super().__init__()
        self.bot = bot
        self._poll_members.change_interval(minutes=config.CHECK_INTERVAL_MINUTES)
        self._poll_members.start()

    def cog_unload(self):
        self._poll_members.cancel()

    # ---------- Events ----------
    @commands.Cog.listener()
    async def on_presence_update(self, before: discord.Member, after: discord.Member):
        if not after.guild or not is_watched_member(after):
            return
        try:
            await asyncio.to_thread(_record, after, now_ms())
        except Exception:
            log.exception("presence.update_failed", extra={"guild_id": after.guild.id, "user_id": after.id})

    # ---------- Loops ----------
    @tasks.loop(minutes=5)
    async def _poll_members(self):
        # catch transitions the gateway never delivered
        await _sweep_guilds(self.bot.guilds)

    @_poll_members.before_loop
    async def _before_poll_members(self):
        await self.bot.wait_until_ready()

    # ------- /presence overview -------
    @app_commands.command(name="overview", description="Who is watched, online and showing the desired status.")
    @app_commands.describe(post="Post publicly?")
    async def overview(self, interaction: discord.Interaction, post: bool = False):
        if not await _require_guild(interaction):
            return
        await interaction.response.defer(ephemeral=not post)
        members = watched_members(interaction.guild)
        active: List[discord.Member] = [m for m in members if is_active_status(m)]
        qualifying = [m for m in active if has_desired_status(custom_status_text(m))]
        noncompliant = [m.id for m in active if m not in qualifying]
        embed = _build_overview_embed(
            total=len(members),
            active=len(active),
            qualifying=len(qualifying),
            noncompliant=noncompliant,
        )
        await interaction.followup.send(embed=embed, ephemeral=not post)

    # ------- /presence status -------
    @app_commands.command(name="status", description="A member's current presence and custom status.")
    @app_commands.describe(user="Member to inspect")
    async def status(self, interaction: discord.Interaction, user: discord.Member):
        if not await _require_guild(interaction):
            return
        text = custom_status_text(user)
        active = is_active_status(user)
        await interaction.response.send_message(
            S(
                "presence.status.body",
                user=user.mention,
                online=_yes_no(active),
                custom=text or S("common.none"),
                compliant=_yes_no(active and has_desired_status(text)),
            ),
            ephemeral=True,
        )

    # ------- /presence report -------
    @app_commands.command(name="report", description="Online and desired-status time for one member.")
    @app_commands.describe(
        user="Member to report on",
        period="day / week / month (default: day)",
        previous="Report the previous period instead of the current one",
    )
    async def report(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
        period: Granularity = "day",
        previous: bool = False,
    ):
        if not await _require_guild(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        ref = now_local()
        p: Period = previous_period(period, ref) if previous else period_for(period, ref)
        now = now_ms()
        end = min(p.end_ms, now)
        totals = await asyncio.to_thread(tracker.get_live_totals, user.id, p.start_ms, p.end_ms, now_ms=now)
        if totals is None:
            return await interaction.followup.send(S("common.storage_unavailable"), ephemeral=True)
        try:
            active = await asyncio.to_thread(tracker.get_sessions_between, user.id, "active", p.start_ms, p.end_ms)
            qualifying = await asyncio.to_thread(
                tracker.get_sessions_between, user.id, "qualifying", p.start_ms, p.end_ms
            )
        except StorageUnavailable:
            return await interaction.followup.send(S("common.storage_unavailable"), ephemeral=True)
        text = _build_report_text(
            period=p,
            user_mention=user.mention,
            totals=totals,
            elapsed_ms=max(0, end - p.start_ms),
            active_sessions=active,
            qualifying_sessions=qualifying,
        )
        await interaction.followup.send(text, ephemeral=True)

    # ------- /presence mytime -------
    @app_commands.command(name="mytime", description="Your online time today, this week and this month.")
    async def mytime(self, interaction: discord.Interaction):
        if not await _require_guild(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        ref = now_local()
        now = now_ms()
        durations = {}
        for g in ("day", "week", "month"):
            p = period_for(g, ref)
            totals = await asyncio.to_thread(
                tracker.get_live_totals, interaction.user.id, p.start_ms, p.end_ms, now_ms=now
            )
            if totals is None:
                return await interaction.followup.send(S("common.storage_unavailable"), ephemeral=True)
            durations[g] = _fmt_duration(totals.active_ms)
        await interaction.followup.send(
            S(
                "presence.mytime.body",
                user=interaction.user.mention,
                day=durations["day"],
                week=durations["week"],
                month=durations["month"],
            ),
            ephemeral=True,
        )

    # ------- /presence top -------
    @app_commands.command(name="top", description="Leaderboard for a day, week or month.")
    @app_commands.describe(
        period="day / week / month (default: day)",
        metric="What to rank by (default from config)",
        limit="How many to list (1–50)",
        previous="Rank the previous period instead of the current one",
        post="Post publicly?",
    )
    async def top(
        self,
        interaction: discord.Interaction,
        period: Granularity = "day",
        metric: Optional[Metric] = None,
        limit: app_commands.Range[int, 1, 50] = 10,
        previous: bool = False,
        post: bool = False,
    ):
        if not await _require_guild(interaction):
            return
        await interaction.response.defer(ephemeral=not post)
        metric = metric or summary_metric()
        ref = now_local()
        p = previous_period(period, ref) if previous else period_for(period, ref)
        watched = [m.id for m in watched_members(interaction.guild)]
        try:
            rows = await asyncio.to_thread(
                tracker.get_top_n, interaction.guild_id, p.label, metric, int(limit), subject_ids=watched
            )
        except StorageUnavailable:
            return await interaction.followup.send(S("common.storage_unavailable"), ephemeral=not post)
        embed = _build_rank_embed(interaction.guild, period=p, metric=metric, limit=int(limit), rows=rows)
        if embed is None:
            return await interaction.followup.send(
                S("presence.rank.empty", period=S(f"period.{p.granularity}")), ephemeral=not post
            )
        await interaction.followup.send(embed=embed, ephemeral=not post)

    # ------- /presence rollup (admin) -------
    @app_commands.command(name="rollup", description="Store totals for a finished day, week or month.")
    @app_commands.describe(period="day / week / month (default: day)")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def rollup(self, interaction: discord.Interaction, period: Granularity = "day"):
        if not await _require_guild(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        p = previous_period(period, now_local())
        result = await asyncio.to_thread(roll_up_guild, interaction.guild, p)
        msg = S("presence.rollup.done", label=p.label, ok=len(result.succeeded), failed=len(result.failed))
        if result.failed:
            msg += "\n" + S("presence.rollup.failed_list", members=", ".join(f"<@{i}>" for i in result.failed[:20]))
        await interaction.followup.send(msg, ephemeral=True)

    async def cog_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        original = getattr(error, "original", error)
        if isinstance(original, StorageUnavailable):
            msg = S("common.storage_unavailable")
        elif isinstance(error, app_commands.MissingPermissions):
            msg = S("common.missing_permissions")
        else:
            log.exception("presence.command_failed", exc_info=original)
            msg = S("common.error")
        if interaction.response.is_done():
            await interaction.followup.send(msg, ephemeral=True)
        else:
            await interaction.response.send_message(msg, ephemeral=True)


async def setup(bot: commands.Bot):
    await bot.add_cog(PresenceCog(bot))
