"""DiscordBotService — owns the process-wide Discord connection."""

import asyncio

import discord
import structlog
from discord.ext import commands

from rolegate.bot.plans import PlansCog
from rolegate.services.entitlements import EntitlementMapper

logger = structlog.get_logger(__name__)


class RoleGateBot(commands.Bot):
    def __init__(self, mapper: EntitlementMapper, guild_id: int | None):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True  # member cache + chunking for role grants
        super().__init__(command_prefix="!", intents=intents)
        self.mapper = mapper
        self.guild_id = guild_id

    async def setup_hook(self) -> None:
        await self.add_cog(PlansCog(self, self.mapper))
        if self.guild_id:
            guild = discord.Object(id=self.guild_id)
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("slash_commands_synced", guild_id=self.guild_id, count=len(synced))

    async def on_ready(self) -> None:
        logger.info("discord_bot_ready", user=str(self.user), guild_count=len(self.guilds))


class DiscordBotService:
    """Starts the bot in the background of the web process and stops it on shutdown."""

    def __init__(self, token: str, mapper: EntitlementMapper, guild_id: int | None):
        self.token = token
        self.bot = RoleGateBot(mapper, guild_id)
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self.bot.start(self.token), name="discord-bot")
        self._task.add_done_callback(self._on_exit)
        logger.info("discord_bot_starting")

    def _on_exit(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("discord_bot_stopped_with_error", error=str(exc), error_type=type(exc).__name__)

    async def stop(self) -> None:
        if not self.bot.is_closed():
            await self.bot.close()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=10)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                self._task.cancel()
            except Exception:
                # already reported by _on_exit
                pass
        logger.info("discord_bot_stopped")

    def is_ready(self) -> bool:
        return self.bot.is_ready()
