"""
Tests for threshold role reconciliation

Run: python -m pytest tests/unit/test_reconciler.py -v
"""

import pytest

from moolabot.core.errors import InvalidInputError
from moolabot.core.reconciler import (
    LOSING,
    WINNING,
    RoleCategory,
    ThresholdReconciler,
    Thresholds,
    select_target_team,
)


THRESHOLDS = Thresholds(wl=100, ml=200, freemint=500)


class TestThresholdReconciler:
    """Classification and granting of threshold roles"""

    @pytest.mark.asyncio
    async def test_single_threshold_met(self, categories, gateway_factory):
        """One member over the whitelist line, one under everything"""
        gateway = gateway_factory({'a': [], 'b': []})
        reconciler = ThresholdReconciler(gateway, categories)
        members = [{'discord_id': 'a', 'points': 150}, {'discord_id': 'b', 'points': 50}]

        log = await reconciler.reconcile(members, await gateway.fetch_roles_for(['a', 'b']), THRESHOLDS)

        assert log.whitelist.added == 1
        assert log.whitelist.existing == 0
        assert log.moolalist.added == 0
        assert log.freemint.added == 0
        assert gateway.added == [('a', 101)]

    @pytest.mark.asyncio
    async def test_winner_variant_counts_as_existing(self, categories, gateway_factory):
        gateway = gateway_factory({'a': [102, 202], 'b': [301]})
        reconciler = ThresholdReconciler(gateway, categories)
        members = [{'discord_id': 'a', 'points': 600}, {'discord_id': 'b', 'points': 600}]

        log = await reconciler.reconcile(members, await gateway.fetch_roles_for(['a', 'b']), THRESHOLDS)

        assert log.whitelist.existing == 1 and log.whitelist.added == 1
        assert log.moolalist.existing == 1 and log.moolalist.added == 1
        assert log.freemint.existing == 1 and log.freemint.added == 1
        assert sorted(gateway.added) == [('a', 301), ('b', 101), ('b', 201)]

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, categories, gateway_factory):
        gateway = gateway_factory({'a': []})
        reconciler = ThresholdReconciler(gateway, categories)

        log = await reconciler.reconcile([{'discord_id': 'a', 'points': 200}], {'a': set()}, THRESHOLDS)

        assert log.whitelist.added == 1
        assert log.moolalist.added == 1
        assert log.freemint.added == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("population", [
        {'a': ([101, 201, 301], 0), 'b': ([102], 5000), 'c': ([], 250)},
        {'a': ([301], 99), 'b': ([201, 202], 100), 'c': ([101], 1000)},
        {'a': ([101, 102, 201, 202, 301, 302], 10)},
    ])
    async def test_never_removes_roles(self, categories, gateway_factory, population):
        """Roles held before a run are still held afterwards, whatever the balance"""
        gateway = gateway_factory({k: roles for k, (roles, _) in population.items()})
        before = {k: set(v) for k, v in gateway.roles.items()}
        members = [{'discord_id': k, 'points': points} for k, (_, points) in population.items()]
        reconciler = ThresholdReconciler(gateway, categories)

        await reconciler.reconcile(members, await gateway.fetch_roles_for(population), THRESHOLDS)

        assert gateway.removed == []
        for discord_id, held in before.items():
            assert held <= gateway.roles[discord_id]

    @pytest.mark.asyncio
    async def test_dry_run_matches_real_run(self, categories, gateway_factory):
        roles = {'a': [101], 'b': [], 'c': [202], 'd': [302, 101]}
        members = [
            {'discord_id': 'a', 'points': 700},
            {'discord_id': 'b', 'points': 150},
            {'discord_id': 'c', 'points': 250},
            {'discord_id': 'd', 'points': 40},
            {'discord_id': 'gone', 'points': 900},
        ]

        dry_gateway = gateway_factory(roles)
        dry_log = await ThresholdReconciler(dry_gateway, categories).reconcile(
            members, await dry_gateway.fetch_roles_for(roles), THRESHOLDS, dry_run=True
        )
        real_gateway = gateway_factory(roles)
        real_log = await ThresholdReconciler(real_gateway, categories).reconcile(
            members, await real_gateway.fetch_roles_for(roles), THRESHOLDS, dry_run=False
        )

        assert dry_log.to_dict() == real_log.to_dict()
        assert dry_gateway.added == []
        assert len(real_gateway.added) == sum(c['added'] for c in real_log.to_dict().values())

    @pytest.mark.asyncio
    async def test_unresolvable_member_skipped(self, categories, gateway_factory):
        """Members who left the guild are neither counted nor errors"""
        gateway = gateway_factory({'a': []})
        reconciler = ThresholdReconciler(gateway, categories)
        members = [{'discord_id': 'left', 'points': 1000}, {'discord_id': 'a', 'points': 1000}]

        log = await reconciler.reconcile(members, await gateway.fetch_roles_for(['left', 'a']), THRESHOLDS)

        assert log.whitelist.added == 1
        assert log.moolalist.added == 1
        assert log.freemint.added == 1
        assert log.errors == 0

    @pytest.mark.asyncio
    async def test_failed_grant_does_not_abort(self, categories, gateway_factory):
        gateway = gateway_factory({'a': [], 'b': []}, failing_add=['a'])
        reconciler = ThresholdReconciler(gateway, categories)
        members = [{'discord_id': 'a', 'points': 150}, {'discord_id': 'b', 'points': 150}]

        log = await reconciler.reconcile(members, await gateway.fetch_roles_for(['a', 'b']), THRESHOLDS)

        assert log.whitelist.added == 1
        assert log.errors == 1
        assert gateway.added == [('b', 101)]

    @pytest.mark.asyncio
    async def test_rows_without_discord_id_ignored(self, categories, gateway_factory):
        gateway = gateway_factory({})
        log = await ThresholdReconciler(gateway, categories).reconcile(
            [{'discord_id': None, 'points': 1000}], {}, THRESHOLDS
        )
        assert log.to_dict() == {
            'whitelist': {'added': 0, 'existing': 0},
            'moolalist': {'added': 0, 'existing': 0},
            'freemint': {'added': 0, 'existing': 0},
        }

    @pytest.mark.asyncio
    async def test_pauses_after_each_grant(self, categories, gateway_factory, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr("moolabot.core.reconciler.asyncio.sleep", fake_sleep)
        roles = {str(i): [] for i in range(5)}
        members = [{'discord_id': str(i), 'points': 1000} for i in range(5)]
        gateway = gateway_factory(roles, failing_add=['4'])
        reconciler = ThresholdReconciler(gateway, categories, mutation_delay=0.25)

        await reconciler.reconcile(members, await gateway.fetch_roles_for(roles), THRESHOLDS, dry_run=True)
        assert sleeps == []

        log = await reconciler.reconcile(members, await gateway.fetch_roles_for(roles), THRESHOLDS)

        assert len(gateway.added) == 12
        assert log.errors == 3
        # failed grants still count against the rate limit
        assert sleeps == [0.25] * 15

    def test_role_ids_cover_base_and_winner(self, categories, gateway_factory):
        reconciler = ThresholdReconciler(gateway_factory(), categories)
        assert sorted(reconciler.role_ids()) == [101, 102, 201, 202, 301, 302]


class TestThresholds:
    def test_negative_threshold_rejected(self):
        with pytest.raises(InvalidInputError):
            Thresholds(wl=-1, ml=10, freemint=20)

    def test_zero_threshold_allowed(self):
        assert Thresholds(wl=0, ml=0, freemint=0).for_category('moolalist') == 0


class TestRoleCategory:
    def test_held_by_either_role(self):
        category = RoleCategory('whitelist', 1, 2)
        assert category.held_by({1})
        assert category.held_by({2, 9})
        assert not category.held_by({9})


class TestSelectTargetTeam:
    def test_winning_and_losing(self):
        points = {'bullas': 500, 'beras': 300}
        assert select_target_team(points, WINNING) == 'bullas'
        assert select_target_team(points, LOSING) == 'beras'

    def test_tie_goes_to_beras(self):
        points = {'bullas': 300, 'beras': 300}
        assert select_target_team(points, WINNING) == 'beras'
        assert select_target_team(points, LOSING) == 'bullas'

    def test_unknown_team_type(self):
        with pytest.raises(InvalidInputError):
            select_target_team({}, 'middle')
