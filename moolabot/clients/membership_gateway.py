"""
Guild membership client
Id-based wrapper around a discord.Guild used by the role reconciliation code
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

import discord

from moolabot.core.errors import MemberNotFoundError, RoleNotFoundError

# Discord caps member chunk requests at 100 ids
MAX_QUERY_IDS = 100


class MembershipGateway:
    def __init__(self, guild: discord.Guild, batch_size: int = 50, batch_delay: float = 1.0):
        self.guild = guild
        self.batch_size = max(1, min(batch_size, MAX_QUERY_IDS))
        self.batch_delay = batch_delay
        self.logger = logging.getLogger(__name__)

    def get_role(self, role_id: int) -> discord.Role:
        role = self.guild.get_role(int(role_id))
        if role is None:
            raise RoleNotFoundError([role_id])
        return role

    def require_roles(self, role_ids: Iterable[int]) -> List[discord.Role]:
        """Fetch several roles, failing with every missing id at once"""
        roles, missing = [], []
        for role_id in role_ids:
            role = self.guild.get_role(int(role_id))
            if role is None:
                missing.append(role_id)
            else:
                roles.append(role)
        if missing:
            raise RoleNotFoundError(missing)
        return roles

    async def fetch_member(self, discord_id: str) -> discord.Member:
        member = self.guild.get_member(int(discord_id))
        if member is not None:
            return member
        try:
            return await self.guild.fetch_member(int(discord_id))
        except discord.NotFound:
            raise MemberNotFoundError(discord_id)

    async def fetch_member_roles(self, discord_id: str) -> Set[int]:
        member = await self.fetch_member(discord_id)
        return {role.id for role in member.roles}

    async def fetch_roles_for(self, discord_ids: Iterable[str]) -> Dict[str, Set[int]]:
        """
        Resolve role sets for many members in batches

        Members that are not in the guild are left out of the result. A
        failed batch is logged and skipped.
        """
        ids = [str(i) for i in discord_ids if i]
        roles: Dict[str, Set[int]] = {}

        for start in range(0, len(ids), self.batch_size):
            batch = ids[start:start + self.batch_size]
            try:
                members = await self.guild.query_members(
                    user_ids=[int(i) for i in batch],
                    limit=MAX_QUERY_IDS,
                    cache=True
                )
                for member in members:
                    roles[str(member.id)] = {role.id for role in member.roles}
            except Exception as e:
                self.logger.error(f"Error fetching member batch {start}-{start + len(batch)}: {e}")

            if self.batch_delay and start + self.batch_size < len(ids):
                await asyncio.sleep(self.batch_delay)

        self.logger.info(f"Resolved {len(roles)}/{len(ids)} members in guild {self.guild.id}")
        return roles

    async def add_role(self, discord_id: str, role_id: int, reason: Optional[str] = None):
        member = await self.fetch_member(discord_id)
        await member.add_roles(self.get_role(role_id), reason=reason)

    async def remove_role(self, discord_id: str, role_id: int, reason: Optional[str] = None):
        member = await self.fetch_member(discord_id)
        await member.remove_roles(self.get_role(role_id), reason=reason)
