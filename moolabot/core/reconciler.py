"""
Threshold role reconciliation
Grants whitelist / moolalist / free-mint roles to members whose balance
meets the admin-supplied thresholds. Roles are only ever added here.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Set

from moolabot.core.errors import InvalidInputError
from moolabot.core.role_assigner import DEFAULT_MUTATION_DELAY
from moolabot.core.teams import BERAS, BULLAS, other_team

# Category keys, in the order they are evaluated and reported
WHITELIST = "whitelist"
MOOLALIST = "moolalist"
FREEMINT = "freemint"
CATEGORIES = (WHITELIST, MOOLALIST, FREEMINT)

WINNING = "winning"
LOSING = "losing"


@dataclass(frozen=True)
class RoleCategory:
    """A flag role plus the winner variant that also counts as holding it"""
    name: str
    role_id: int
    winner_role_id: int

    def held_by(self, role_ids: Set[int]) -> bool:
        return self.role_id in role_ids or self.winner_role_id in role_ids


@dataclass(frozen=True)
class Thresholds:
    wl: int
    ml: int
    freemint: int

    def __post_init__(self):
        for name in ("wl", "ml", "freemint"):
            value = getattr(self, name)
            if value is None or value < 0:
                raise InvalidInputError(f"{name} threshold must be a non-negative integer")

    def for_category(self, category: str) -> int:
        return {WHITELIST: self.wl, MOOLALIST: self.ml, FREEMINT: self.freemint}[category]


@dataclass
class CategoryCounts:
    added: int = 0
    existing: int = 0


@dataclass
class RoleUpdateLog:
    whitelist: CategoryCounts = field(default_factory=CategoryCounts)
    moolalist: CategoryCounts = field(default_factory=CategoryCounts)
    freemint: CategoryCounts = field(default_factory=CategoryCounts)
    # Grants that were attempted and failed; always 0 on a dry run
    errors: int = 0

    def counts(self, category: str) -> CategoryCounts:
        return getattr(self, category)

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {
            name: {'added': self.counts(name).added, 'existing': self.counts(name).existing}
            for name in CATEGORIES
        }


def build_role_categories(role_ids: Mapping[str, int]) -> Dict[str, RoleCategory]:
    """Build the three categories from the configured role id mapping"""
    return {
        WHITELIST: RoleCategory(WHITELIST, role_ids['whitelist'], role_ids['whitelist_winner']),
        MOOLALIST: RoleCategory(MOOLALIST, role_ids['moolalist'], role_ids['moolalist_winner']),
        FREEMINT: RoleCategory(FREEMINT, role_ids['free_mint'], role_ids['free_mint_winner']),
    }


def select_target_team(team_points: Mapping[str, int], team_type: str) -> str:
    """
    Resolve 'winning' / 'losing' to a concrete team label

    The winning team needs strictly more points; a tie counts as a beras win.
    """
    if team_type not in (WINNING, LOSING):
        raise InvalidInputError(f"Team must be '{WINNING}' or '{LOSING}'")

    winning_team = BULLAS if team_points.get(BULLAS, 0) > team_points.get(BERAS, 0) else BERAS
    return winning_team if team_type == WINNING else other_team(winning_team)


class ThresholdReconciler:
    """
    Computes which members are missing a threshold role and grants it

    A member absent from the current role mapping could not be resolved
    through the gateway (usually they left the server) and is skipped
    without being counted.
    """

    def __init__(self, gateway, categories: Dict[str, RoleCategory],
                 mutation_delay: float = DEFAULT_MUTATION_DELAY):
        self.gateway = gateway
        self.categories = categories
        self.mutation_delay = mutation_delay
        self.logger = logging.getLogger(__name__)

    def role_ids(self) -> List[int]:
        ids = []
        for category in self.categories.values():
            ids.extend([category.role_id, category.winner_role_id])
        return ids

    async def reconcile(self, members: Iterable[Mapping], current_roles: Mapping[str, Set[int]],
                        thresholds: Thresholds, dry_run: bool = False) -> RoleUpdateLog:
        """
        Args:
            members: rows with 'discord_id' and 'points'
            current_roles: discord_id -> role ids currently held
            thresholds: minimum balance per category
            dry_run: classify only, never call the gateway

        Returns:
            RoleUpdateLog with per-category added/existing counters
        """
        log = RoleUpdateLog()
        mode = "Simulating" if dry_run else "Applying"
        members = list(members)
        self.logger.info(f"{mode} role update for {len(members)} members")

        for member in members:
            discord_id = member.get('discord_id')
            if not discord_id:
                continue

            held = current_roles.get(discord_id)
            if held is None:
                self.logger.debug(f"Skipping {discord_id}: not resolvable in guild")
                continue

            points = member.get('points') or 0
            for name in CATEGORIES:
                category = self.categories[name]
                if points < thresholds.for_category(name):
                    continue

                counts = log.counts(name)
                if category.held_by(held):
                    counts.existing += 1
                    continue

                if not dry_run:
                    try:
                        await self.gateway.add_role(discord_id, category.role_id)
                    except Exception as e:
                        log.errors += 1
                        self.logger.error(f"Error adding {name} role to {discord_id}: {e}")
                        continue
                    finally:
                        if self.mutation_delay:
                            await asyncio.sleep(self.mutation_delay)
                counts.added += 1

        self.logger.info(f"{mode} role update finished: {log.to_dict()} ({log.errors} errors)")
        return log
