from __future__ import annotations

import os
import sys
import asyncio
import logging
import signal
from contextlib import suppress
from typing import Iterable, List, Sequence

import discord
from discord.ext import commands

from .db import ensure_db
from .strings import _STRINGS  # noqa: F401  (force-load strings at startup)

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stdout,
)
log = logging.getLogger("presencebot")

EXTENSIONS: Sequence[str] = (
    "presencebot.cogs.presence",
    "presencebot.cogs.rollups",
)


# -----------------------------------------------------------------------------
# Intents
# -----------------------------------------------------------------------------
def build_intents() -> discord.Intents:
    """Members and presences are privileged; enable both in the Developer Portal."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True  # privileged
    intents.presences = True  # privileged
    return intents


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _parse_sync_guilds(value: str) -> List[int]:
    gids: List[int] = []
    for tok in (value or "").split(","):
        tok = tok.strip()
        if not tok:
            continue
        try:
            gids.append(int(tok))
        except ValueError:
            log.warning("Ignoring invalid guild id in SYNC_GUILDS: %r", tok)
    return gids


def _sync_mode() -> str:
    mode = (os.getenv("COMMAND_SYNC_MODE") or "guilds").strip().lower()
    if mode not in {"guilds", "global", "none"}:
        log.warning("Unknown COMMAND_SYNC_MODE=%r; defaulting to 'guilds'", mode)
        mode = "guilds"
    return mode


# -----------------------------------------------------------------------------
# Bot
# -----------------------------------------------------------------------------
class PresenceBot(commands.Bot):
    def __init__(self) -> None:
        prefix = os.getenv("COMMAND_PREFIX", "!")
        super().__init__(command_prefix=prefix, intents=build_intents())
        self._shutdown_signal: str | None = None

    async def setup_hook(self) -> None:
        ensure_db()
        log.info("Database ensured/connected.")

        guild_ids = _parse_sync_guilds(os.getenv("SYNC_GUILDS") or "")
        mode = _sync_mode()
        log.info("sync env: mode=%s, sync_guilds=%s", mode, guild_ids or "<none>")

        await self._load_extensions(EXTENSIONS)
        await self._sync_commands(guild_ids, mode)

    async def _load_extensions(self, names: Iterable[str]) -> None:
        for ext in names:
            try:
                await self.load_extension(ext)
                log.info("Loaded extension: %s", ext)
            except commands.ExtensionError:
                log.exception("Failed to load extension: %s", ext)

    async def _sync_commands(self, guild_ids: List[int], mode: str) -> None:
        """
        Publish commands according to mode:
          - 'guilds': copy the global tree into each listed guild and sync there.
          - 'global': push global commands.
          - 'none'  : skip publishing.
        """
        try:
            if mode == "none":
                log.info("Command sync skipped (mode=none).")
                return

            if mode == "global":
                synced = await self.tree.sync()
                log.info("Globally synced %d commands.", len(synced))
                return

            if not guild_ids:
                log.error("No guild IDs provided. Set SYNC_GUILDS='gid1,gid2'.")
                return

            for gid in guild_ids:
                gobj = discord.Object(id=gid)
                self.tree.copy_global_to(guild=gobj)
                synced = await self.tree.sync(guild=gobj)
                log.info("Synced %d commands to guild %s.", len(synced), gid)
        except discord.HTTPException:
            log.exception("Command sync failed.")

    async def on_ready(self) -> None:
        if self.user:
            log.info("Logged in as %s (%s)", self.user, self.user.id)

    async def close(self) -> None:
        log.info("Shutdown initiated (%s): closing bot.", self._shutdown_signal or "requested")
        await super().close()


# -----------------------------------------------------------------------------
# Runner
# -----------------------------------------------------------------------------
async def _run_bot() -> None:
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        log.error("Set DISCORD_TOKEN env var.")
        raise SystemExit(1)

    bot = PresenceBot()
    stop_event = asyncio.Event()

    def _signal_handler(signame: str) -> None:
        bot._shutdown_signal = signame
        log.warning("Received %s, requesting shutdown", signame)
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _signal_handler, sig.name)

    async def _start():
        try:
            await bot.start(token)
        except discord.DiscordException:
            log.exception("Bot.start crashed")
        finally:
            stop_event.set()

    start_task = asyncio.create_task(_start())

    await stop_event.wait()

    if not bot.is_closed():
        await bot.close()

    with suppress(asyncio.CancelledError):
        if not start_task.done():
            start_task.cancel()
        await start_task

    log.info("Shutdown complete.")


def main() -> None:
    try:
        asyncio.run(_run_bot())
    except KeyboardInterrupt:
        log.warning("KeyboardInterrupt, exiting.")


if __name__ == "__main__":
    main()
