"""
Bulk role assignment and zero-balance role removal
Both walk large member populations one member at a time, pausing between
gateway calls to stay under Discord's rate limits.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import AsyncIterable, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from moolabot.core.errors import MemberNotFoundError
from moolabot.core.teams import BERAS, BULLAS

# Pause between per-member gateway calls
DEFAULT_MUTATION_DELAY = 0.1


@dataclass
class BulkAssignResult:
    added: int = 0
    existing: int = 0
    errors: int = 0
    processed_total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


ProgressCallback = Callable[[BulkAssignResult], Awaitable[None]]


class BulkRoleAssigner:
    """Adds one flag role to every member of a paged population"""

    def __init__(self, gateway, mutation_delay: float = DEFAULT_MUTATION_DELAY,
                 progress_every: int = 100):
        self.gateway = gateway
        self.mutation_delay = mutation_delay
        self.progress_every = max(1, progress_every)
        self.logger = logging.getLogger(__name__)

    async def assign_flag_role(self, population: AsyncIterable[List[Mapping]], role_id: int,
                               progress_callback: Optional[ProgressCallback] = None) -> BulkAssignResult:
        """
        Args:
            population: async iterator of pages of rows with 'discord_id'
            role_id: role to add
            progress_callback: awaited with a snapshot of the counters every
                progress_every members and once at the end

        Returns:
            Final counters
        """
        result = BulkAssignResult()

        async for page in population:
            for user in page:
                await self._process_member(user['discord_id'], role_id, result)
                result.processed_total += 1

                if progress_callback and result.processed_total % self.progress_every == 0:
                    await self._report(progress_callback, result)

                if self.mutation_delay:
                    await asyncio.sleep(self.mutation_delay)

        if progress_callback:
            await self._report(progress_callback, result)

        self.logger.info(f"Flag role {role_id} assignment complete: {result.to_dict()}")
        return result

    async def _process_member(self, discord_id: str, role_id: int, result: BulkAssignResult):
        try:
            held = await self.gateway.fetch_member_roles(discord_id)
        except Exception as e:
            result.errors += 1
            self.logger.error(f"Error resolving member {discord_id}: {e}")
            return

        if role_id in held:
            result.existing += 1
            return

        try:
            await self.gateway.add_role(discord_id, role_id)
            result.added += 1
        except Exception as e:
            result.errors += 1
            self.logger.error(f"Error adding role {role_id} to {discord_id}: {e}")

    async def _report(self, progress_callback: ProgressCallback, result: BulkAssignResult):
        try:
            await progress_callback(BulkAssignResult(**result.to_dict()))
        except Exception as e:
            # progress messages are best effort
            self.logger.warning(f"Progress callback failed: {e}")


@dataclass
class PurgeResult:
    removed: int = 0
    skipped: int = 0
    errors: int = 0


class ZeroBalancePurger:
    """Removes the team role from members whose balance is exactly zero"""

    def __init__(self, gateway, team_role_ids: Mapping[str, int],
                 mutation_delay: float = DEFAULT_MUTATION_DELAY):
        self.gateway = gateway
        self.team_role_ids = dict(team_role_ids)
        self.mutation_delay = mutation_delay
        self.logger = logging.getLogger(__name__)

    async def purge(self, users: Iterable[Mapping]) -> PurgeResult:
        result = PurgeResult()

        for user in users:
            discord_id = user.get('discord_id')
            role_id = self.team_role_ids.get(user.get('team'))
            if not discord_id or role_id is None or user.get('points', 0) != 0:
                result.skipped += 1
                continue

            try:
                held = await self.gateway.fetch_member_roles(discord_id)
                if role_id in held:
                    await self.gateway.remove_role(discord_id, role_id)
                    result.removed += 1
                else:
                    result.skipped += 1
            except MemberNotFoundError:
                result.skipped += 1
            except Exception as e:
                result.errors += 1
                self.logger.error(f"Error removing team role from {discord_id}: {e}")

            if self.mutation_delay:
                await asyncio.sleep(self.mutation_delay)

        self.logger.info(
            f"Zero balance purge complete: {result.removed} removed, "
            f"{result.skipped} skipped, {result.errors} errors"
        )
        return result


def team_role_mapping(role_ids: Mapping[str, int]) -> Dict[str, int]:
    return {BULLAS: role_ids['bullas'], BERAS: role_ids['beras']}
