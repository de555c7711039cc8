from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from datetime import time as dtime
from typing import List, Optional

import discord
from discord.ext import commands, tasks

from .. import config, tracker
from ..config import LOCAL_TZ
from ..strings import S
from ..ui.presence import build_rank_embed
from ..utils.periods import Period, previous_period
from ..utils.presence import roll_up_guild, summary_metric
from ..utils.time import now_local

log = logging.getLogger(__name__)


def due_periods(today: datetime) -> List[Period]:
    """Periods that ended at the most recent local midnight and are enabled."""
    due: List[Period] = []
    if config.ENABLE_DAILY_SUMMARY:
        due.append(previous_period("day", today))
    if config.ENABLE_WEEKLY_SUMMARY and today.weekday() == 0:
        due.append(previous_period("week", today))
    if config.ENABLE_MONTHLY_SUMMARY and today.day == 1:
        due.append(previous_period("month", today))
    return due


class RollupsCog(commands.Cog):
    """Nightly rollups of the finished day, week and month, posted to the report channel."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._nightly.start()

    def cog_unload(self) -> None:
        self._nightly.cancel()

    async def _post_summary(self, guild: discord.Guild, period: Period) -> None:
        if not config.REPORT_CHANNEL_ID:
            return
        channel = guild.get_channel(config.REPORT_CHANNEL_ID)
        if not isinstance(channel, discord.abc.Messageable):
            return
        metric = summary_metric()
        limit = config.TOP_N_DEFAULT
        rows = await asyncio.to_thread(tracker.get_top_n, guild.id, period.label, metric, limit)
        embed = build_rank_embed(guild, period=period, metric=metric, limit=limit, rows=rows)
        if embed is None:
            await channel.send(S("presence.rank.empty", period=S(f"period.{period.granularity}")))
            return
        await channel.send(embed=embed)

    async def run_due(self, today: Optional[datetime] = None) -> None:
        today = today or now_local()
        for period in due_periods(today):
            for guild in list(self.bot.guilds):
                try:
                    await asyncio.to_thread(roll_up_guild, guild, period)
                    await self._post_summary(guild, period)
                except Exception:
                    log.exception(
                        "rollups.guild_failed",
                        extra={"guild_id": guild.id, "label": period.label},
                    )

    @tasks.loop(time=dtime(hour=0, minute=5, tzinfo=LOCAL_TZ))
    async def _nightly(self) -> None:
        await self.run_due()

    @_nightly.before_loop
    async def _nightly_ready(self) -> None:
        await self.bot.wait_until_ready()


async def setup(bot: commands.Bot):
    await bot.add_cog(RollupsCog(bot))
