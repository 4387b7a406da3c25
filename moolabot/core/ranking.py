"""
Points leaderboard ranking and pagination
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional

from moolabot.core.errors import InvalidInputError, InvalidPageError
from moolabot.core.teams import ALL_TEAMS, TEAMS

DEFAULT_PAGE_SIZE = 10


@dataclass(frozen=True)
class RankedEntry:
    discord_id: str
    points: int
    team: Optional[str]
    rank: int
    address: Optional[str] = None


@dataclass
class LeaderboardPage:
    entries: List[RankedEntry]
    page: int
    total_pages: int

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


def total_pages_for(count: int, page_size: int) -> int:
    return math.ceil(count / page_size) if count > 0 else 0


def clamp_page(page: int, total_pages: int) -> int:
    """Pull a requested page back into 1..total_pages"""
    if total_pages <= 0:
        return 1
    return max(1, min(page, total_pages))


class RankingService:
    """
    Ranks users by points, highest first

    Excluded ids are removed before ranks are assigned, so they never take
    up a rank number or a page slot. Equal balances are ordered by
    discord_id ascending.
    """

    def __init__(self, database, page_size: int = DEFAULT_PAGE_SIZE,
                 excluded_ids: Iterable[str] = (), allow_all_teams: bool = True):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.database = database
        self.page_size = page_size
        self.excluded_ids = frozenset(str(i) for i in excluded_ids)
        self.allow_all_teams = allow_all_teams
        self.logger = logging.getLogger(__name__)

    def team_choices(self) -> List[str]:
        choices = list(TEAMS)
        if self.allow_all_teams:
            choices.insert(0, ALL_TEAMS)
        return choices

    def validate_team(self, team: str) -> Optional[str]:
        """Return the store filter for a team option (None means every team)"""
        if team == ALL_TEAMS and self.allow_all_teams:
            return None
        if team in TEAMS:
            return team
        raise InvalidInputError(f"Unknown team '{team}'. Choose one of: {', '.join(self.team_choices())}")

    async def rank(self, team: str = ALL_TEAMS, excluded: Optional[Iterable[str]] = None) -> List[RankedEntry]:
        """
        Full ranking for a team filter

        Args:
            team: a team label or 'all'
            excluded: ids to leave out; defaults to the configured exclusion list
        """
        team_filter = self.validate_team(team)
        excluded_ids = self.excluded_ids if excluded is None else frozenset(str(i) for i in excluded)

        rows = await self.database.get_ranked_users(team=team_filter, excluded=sorted(excluded_ids))
        ranked = []
        for row in rows:
            if row['discord_id'] in excluded_ids:
                continue
            ranked.append(RankedEntry(
                discord_id=row['discord_id'],
                points=row['points'],
                team=row.get('team'),
                rank=len(ranked) + 1,
                address=row.get('address'),
            ))
        return ranked

    def page(self, ranked: List[RankedEntry], page_number: int,
             page_size: Optional[int] = None) -> LeaderboardPage:
        """
        Slice one 1-indexed page out of a ranking

        Raises:
            InvalidPageError: page_number is below 1 or past the last page
        """
        size = page_size or self.page_size
        total_pages = total_pages_for(len(ranked), size)
        if page_number < 1 or page_number > total_pages:
            raise InvalidPageError(page_number, total_pages)

        start = (page_number - 1) * size
        return LeaderboardPage(
            entries=ranked[start:start + size],
            page=page_number,
            total_pages=total_pages,
        )

    @staticmethod
    def find_self(ranked: List[RankedEntry], discord_id: str) -> Optional[RankedEntry]:
        """Look up a user anywhere in the ranking, not just the current page"""
        for entry in ranked:
            if entry.discord_id == discord_id:
                return entry
        return None
