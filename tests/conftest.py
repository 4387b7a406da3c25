"""
Pytest configuration and shared fixtures
"""

import pytest
import pytest_asyncio
from typing import Dict, Iterable, Optional, Set

from moolabot.core.database import Database
from moolabot.core.errors import MemberNotFoundError
from moolabot.core.reconciler import build_role_categories

ROLE_IDS = {
    'whitelist': 101,
    'whitelist_winner': 102,
    'moolalist': 201,
    'moolalist_winner': 202,
    'free_mint': 301,
    'free_mint_winner': 302,
    'mootard': 401,
    'already_wanked': 501,
    'bullas': 601,
    'beras': 602,
}


class FakeGateway:
    """
    In-memory stand-in for MembershipGateway

    Members are the keys of `roles`; anything else is not in the guild.
    """

    def __init__(self, roles: Optional[Dict[str, Iterable[int]]] = None,
                 failing_fetch: Iterable[str] = (), failing_add: Iterable[str] = ()):
        self.roles: Dict[str, Set[int]] = {k: set(v) for k, v in (roles or {}).items()}
        self.failing_fetch = set(failing_fetch)
        self.failing_add = set(failing_add)
        self.added = []
        self.removed = []

    async def fetch_member_roles(self, discord_id: str) -> Set[int]:
        if discord_id in self.failing_fetch:
            raise RuntimeError("gateway timeout")
        if discord_id not in self.roles:
            raise MemberNotFoundError(discord_id)
        return set(self.roles[discord_id])

    async def fetch_roles_for(self, discord_ids: Iterable[str]) -> Dict[str, Set[int]]:
        return {i: set(self.roles[i]) for i in discord_ids if i in self.roles}

    async def add_role(self, discord_id: str, role_id: int, reason: Optional[str] = None):
        if discord_id in self.failing_add:
            raise RuntimeError("missing permissions")
        if discord_id not in self.roles:
            raise MemberNotFoundError(discord_id)
        self.roles[discord_id].add(role_id)
        self.added.append((discord_id, role_id))

    async def remove_role(self, discord_id: str, role_id: int, reason: Optional[str] = None):
        if discord_id not in self.roles:
            raise MemberNotFoundError(discord_id)
        self.roles[discord_id].discard(role_id)
        self.removed.append((discord_id, role_id))


@pytest.fixture
def role_ids() -> Dict[str, int]:
    return dict(ROLE_IDS)


@pytest.fixture
def categories(role_ids):
    return build_role_categories(role_ids)


@pytest.fixture
def gateway_factory():
    return FakeGateway


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh SQLite store per test"""
    db = Database(str(tmp_path / "moola_test.db"))
    await db.initialize()
    return db


@pytest.fixture
def test_config_dict() -> Dict:
    """Valid configuration that tests can modify"""
    return {
        'discord_bot': {
            'bot_token': 'test-token',
            'link_base_url': 'https://link.example/',
        },
        'roles': dict(ROLE_IDS),
        'admin_role_ids': [900, 901],
        'whitelist_minimum': 150,
        'leaderboard': {
            'page_size': 5,
            'allow_all_teams': False,
            'excluded_user_ids': [111, '222'],
        },
        'database': {'file': 'data/test.db'},
    }
