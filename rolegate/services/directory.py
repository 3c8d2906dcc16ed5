"""Membership directory — Discord guild, member and role operations.

The reconciliation workflow only talks to Discord through the
MembershipDirectory protocol. DiscordDirectory implements it on top of the
process-wide bot owned by DiscordBotService.
"""

from typing import Any, Protocol

import discord
import structlog

from rolegate.core.exceptions import DirectoryOperationError

logger = structlog.get_logger(__name__)

AUDIT_REASON = "Stripe subscription reconciliation"


class MembershipDirectory(Protocol):
    def find_community(self, community_id: int) -> Any | None: ...

    def find_member(self, guild: Any, member_id: int) -> Any | None: ...

    async def find_member_after_refresh(self, guild: Any, member_id: int) -> Any | None: ...

    def find_role(self, guild: Any, role_id: int) -> Any | None: ...

    def agent_can_manage(self, guild: Any) -> bool: ...

    def agent_outranks(self, guild: Any, role: Any) -> bool: ...

    async def grant(self, member: Any, role: Any) -> None: ...

    async def revoke(self, member: Any, role: Any) -> None: ...


async def resolve_member(directory: MembershipDirectory, guild: Any, member_id: int) -> Any | None:
    """Look a member up in the cache, refreshing the directory once on a miss."""
    member = directory.find_member(guild, member_id)
    if member is not None:
        return member

    logger.info("member_cache_miss", guild_id=guild.id, member_id=member_id)
    member = await directory.find_member_after_refresh(guild, member_id)
    if member is None:
        logger.warning("member_not_found_after_refresh", guild_id=guild.id, member_id=member_id)
    return member


class DiscordDirectory:
    """MembershipDirectory backed by a discord.py client."""

    def __init__(self, client: discord.Client):
        self.client = client

    def find_community(self, community_id: int) -> discord.Guild | None:
        return self.client.get_guild(community_id)

    def find_member(self, guild: discord.Guild, member_id: int) -> discord.Member | None:
        return guild.get_member(member_id)

    async def find_member_after_refresh(self, guild: discord.Guild, member_id: int) -> discord.Member | None:
        """Re-download the guild member list, then fall back to a direct fetch.

        The gateway member cache lags real membership, so a buyer who joined
        moments before checkout may be missing from it.
        """
        if not guild.chunked:
            try:
                await guild.chunk(cache=True)
            except discord.ClientException as e:
                # Raised when the members intent is disabled
                logger.warning("guild_chunk_failed", guild_id=guild.id, error=str(e))

        member = guild.get_member(member_id)
        if member is not None:
            return member

        try:
            return await guild.fetch_member(member_id)
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            logger.warning("member_fetch_failed", guild_id=guild.id, member_id=member_id, error=str(e))
            return None

    def find_role(self, guild: discord.Guild, role_id: int) -> discord.Role | None:
        return guild.get_role(role_id)

    def agent_can_manage(self, guild: discord.Guild) -> bool:
        return guild.me.guild_permissions.manage_roles

    def agent_outranks(self, guild: discord.Guild, role: discord.Role) -> bool:
        """True when the role sits strictly below the bot's highest role."""
        return role.position < guild.me.top_role.position

    async def grant(self, member: discord.Member, role: discord.Role) -> None:
        if any(r.id == role.id for r in member.roles):
            logger.info("role_already_held", member_id=member.id, role_id=role.id)
            return
        try:
            await member.add_roles(role, reason=AUDIT_REASON)
        except discord.HTTPException as e:
            raise DirectoryOperationError("grant", str(e)) from e

    async def revoke(self, member: discord.Member, role: discord.Role) -> None:
        if not any(r.id == role.id for r in member.roles):
            logger.info("role_already_absent", member_id=member.id, role_id=role.id)
            return
        try:
            await member.remove_roles(role, reason=AUDIT_REASON)
        except discord.HTTPException as e:
            raise DirectoryOperationError("revoke", str(e)) from e
