"""Slash command that lists the plans members can buy."""

import discord
import structlog
from discord import app_commands
from discord.ext import commands

from rolegate.services.entitlements import EntitlementMapper

logger = structlog.get_logger(__name__)

GENERIC_ERROR = "Sorry, something went wrong. Please try again later."


def format_plans(plan_names: list[str]) -> str:
    if not plan_names:
        return "No plans are available right now."
    lines = ["Available plans:"]
    lines.extend(f"- {name}" for name in plan_names)
    return "\n".join(lines)


class PlansCog(commands.Cog):
    def __init__(self, bot: commands.Bot, mapper: EntitlementMapper):
        self.bot = bot
        self.mapper = mapper

    @app_commands.command(name="plans", description="List the subscription plans you can buy.")
    async def plans(self, interaction: discord.Interaction) -> None:
        try:
            message = format_plans(self.mapper.plans())
        except Exception:
            logger.exception("plans_command_failed", user_id=interaction.user.id)
            message = GENERIC_ERROR
        await interaction.response.send_message(message, ephemeral=True)
