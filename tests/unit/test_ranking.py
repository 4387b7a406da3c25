"""
Tests for leaderboard ranking and pagination
"""

import pytest

from moolabot.core.errors import InvalidInputError, InvalidPageError
from moolabot.core.ranking import RankingService, clamp_page, total_pages_for


async def seed(database, count, team='bullas', start_points=1000, step=10, prefix='u'):
    for i in range(count):
        await database.add_user(f"{prefix}{i:03d}", f"0xaddr{i}", start_points - i * step, team)


class TestRankingService:

    @pytest.mark.asyncio
    async def test_points_descending_with_id_tiebreak(self, database):
        await database.add_user('300', '0x3', 50, 'bullas')
        await database.add_user('100', '0x1', 50, 'beras')
        await database.add_user('200', '0x2', 80, 'bullas')
        ranking = RankingService(database)

        ranked = await ranking.rank('all')

        assert [(e.discord_id, e.rank) for e in ranked] == [('200', 1), ('100', 2), ('300', 3)]

    @pytest.mark.asyncio
    async def test_team_filter(self, database):
        await seed(database, 3, team='bullas', prefix='b')
        await seed(database, 2, team='beras', prefix='r')
        await database.add_user('noteam', None, 5000, None)
        ranking = RankingService(database)

        beras = await ranking.rank('beras')
        everyone = await ranking.rank('all')

        assert [e.discord_id for e in beras] == ['r000', 'r001']
        assert [e.rank for e in beras] == [1, 2]
        assert len(everyone) == 6
        assert everyone[0].discord_id == 'noteam'

    @pytest.mark.asyncio
    async def test_excluded_ids_take_no_rank(self, database):
        await seed(database, 5)
        ranking = RankingService(database, excluded_ids=['u000', 'u002'])

        ranked = await ranking.rank('bullas')

        assert [e.discord_id for e in ranked] == ['u001', 'u003', 'u004']
        assert [e.rank for e in ranked] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_explicit_exclusion_overrides_default(self, database):
        await seed(database, 3)
        ranking = RankingService(database, excluded_ids=['u000'])

        assert len(await ranking.rank('bullas', excluded=())) == 3
        assert [e.discord_id for e in await ranking.rank('bullas', excluded=['u001'])] == ['u000', 'u002']

    @pytest.mark.asyncio
    async def test_pagination_of_25_members(self, database):
        await seed(database, 25)
        ranking = RankingService(database, page_size=10)
        ranked = await ranking.rank('bullas')

        last = ranking.page(ranked, 3)

        assert last.total_pages == 3
        assert len(last.entries) == 5
        assert last.has_previous and not last.has_next
        with pytest.raises(InvalidPageError):
            ranking.page(ranked, 4)
        with pytest.raises(InvalidPageError):
            ranking.page(ranked, 0)

    @pytest.mark.asyncio
    async def test_pages_reassemble_full_ranking(self, database):
        await seed(database, 23, step=3)
        await database.add_user('tie_a', '0x', 940, 'bullas')
        await database.add_user('tie_b', '0x', 940, 'bullas')
        ranking = RankingService(database, page_size=4)
        ranked = await ranking.rank('bullas')

        board = ranking.page(ranked, 1)
        collected = list(board.entries)
        while board.has_next:
            board = ranking.page(ranked, board.page + 1)
            collected.extend(board.entries)

        assert collected == ranked
        assert all(a.points >= b.points for a, b in zip(collected, collected[1:]))
        assert [e.rank for e in collected] == list(range(1, len(ranked) + 1))

    @pytest.mark.asyncio
    async def test_find_self_outside_current_page(self, database):
        await seed(database, 25)
        ranking = RankingService(database, page_size=10)
        ranked = await ranking.rank('bullas')

        entry = ranking.find_self(ranked, 'u021')

        assert entry is not None
        assert entry.rank == 22
        assert ranking.find_self(ranked, 'stranger') is None

    @pytest.mark.asyncio
    async def test_two_team_variant_rejects_all(self, database):
        ranking = RankingService(database, allow_all_teams=False)

        assert ranking.team_choices() == ['bullas', 'beras']
        with pytest.raises(InvalidInputError):
            await ranking.rank('all')

    @pytest.mark.asyncio
    async def test_unknown_team_rejected(self, database):
        with pytest.raises(InvalidInputError):
            await RankingService(database).rank('wolves')

    @pytest.mark.asyncio
    async def test_empty_ranking_has_no_pages(self, database):
        ranking = RankingService(database)
        ranked = await ranking.rank('all')
        assert ranked == []
        with pytest.raises(InvalidPageError):
            ranking.page(ranked, 1)

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            RankingService(None, page_size=0)


class TestPageHelpers:
    def test_total_pages(self):
        assert total_pages_for(25, 10) == 3
        assert total_pages_for(20, 10) == 2
        assert total_pages_for(0, 10) == 0

    def test_clamp_page(self):
        assert clamp_page(0, 3) == 1
        assert clamp_page(7, 3) == 3
        assert clamp_page(2, 3) == 2
        assert clamp_page(5, 0) == 1
