"""
User store for the moola bot
Linked users, wallet-link tokens and persisted runtime settings live in SQLite
"""

import aiosqlite
import logging
from typing import AsyncIterator, Dict, Iterable, List, Optional

from moolabot.core.errors import InsufficientPointsError, UserNotFoundError
from moolabot.core.teams import TEAMS


class Database:
    def __init__(self, db_file: str = "moola.db"):
        self.db_file = db_file
        self.logger = logging.getLogger(__name__)

    async def initialize(self):
        """Initialize database tables"""
        async with aiosqlite.connect(self.db_file) as db:
            # Linked users
            await db.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    discord_id TEXT PRIMARY KEY,
                    address TEXT,
                    points INTEGER NOT NULL DEFAULT 0,
                    team TEXT
                )
            """)
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_users_points ON users (points DESC, discord_id)"
            )

            # One-shot wallet link tokens, consumed by the external web flow
            await db.execute("""
                CREATE TABLE IF NOT EXISTS tokens (
                    token TEXT PRIMARY KEY,
                    discord_id TEXT NOT NULL,
                    used BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # Runtime settings changed through admin commands
            await db.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            await db.commit()

        self.logger.info("Database initialized successfully")

    async def add_user(self, discord_id: str, address: Optional[str] = None,
                       points: int = 0, team: Optional[str] = None):
        """Insert or replace a user row"""
        async with aiosqlite.connect(self.db_file) as db:
            await db.execute(
                "INSERT OR REPLACE INTO users (discord_id, address, points, team) VALUES (?, ?, ?, ?)",
                (discord_id, address, points, team)
            )
            await db.commit()

    async def get_user(self, discord_id: str) -> Optional[Dict]:
        """Single-row lookup by discord id"""
        async with aiosqlite.connect(self.db_file) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT discord_id, address, points, team FROM users WHERE discord_id = ?",
                (discord_id,)
            ) as cursor:
                row = await cursor.fetchone()
                return dict(row) if row else None

    async def update_points(self, discord_id: str, points: int) -> bool:
        """Set a user's balance to an absolute value"""
        async with aiosqlite.connect(self.db_file) as db:
            cursor = await db.execute(
                "UPDATE users SET points = ? WHERE discord_id = ?",
                (points, discord_id)
            )
            await db.commit()
            return cursor.rowcount > 0

    async def transfer_points(self, sender_id: str, receiver_id: str, amount: int) -> Dict[str, int]:
        """
        Move points between two users inside one transaction

        Both balances are read and written on the same connection; any
        failure before commit rolls back both writes.

        Returns:
            Dict with the new 'sender' and 'receiver' balances
        """
        async with aiosqlite.connect(self.db_file) as db:
            try:
                await db.execute("BEGIN IMMEDIATE")
                balances = {}
                for discord_id in (sender_id, receiver_id):
                    async with db.execute(
                        "SELECT points FROM users WHERE discord_id = ?", (discord_id,)
                    ) as cursor:
                        row = await cursor.fetchone()
                    if row is None:
                        raise UserNotFoundError(discord_id)
                    balances[discord_id] = row[0]

                if balances[sender_id] < amount:
                    raise InsufficientPointsError(sender_id, balances[sender_id], amount)

                new_sender = balances[sender_id] - amount
                new_receiver = balances[receiver_id] + amount
                await db.execute(
                    "UPDATE users SET points = ? WHERE discord_id = ?", (new_sender, sender_id)
                )
                await db.execute(
                    "UPDATE users SET points = ? WHERE discord_id = ?", (new_receiver, receiver_id)
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        self.logger.info(f"Transferred {amount} points from {sender_id} to {receiver_id}")
        return {'sender': new_sender, 'receiver': new_receiver}

    async def insert_token(self, token: str, discord_id: str):
        """Record a fresh wallet link token"""
        async with aiosqlite.connect(self.db_file) as db:
            await db.execute(
                "INSERT INTO tokens (token, discord_id, used) VALUES (?, ?, FALSE)",
                (token, discord_id)
            )
            await db.commit()

    async def sum_points_for_team(self, team: str) -> int:
        async with aiosqlite.connect(self.db_file) as db:
            async with db.execute(
                "SELECT COALESCE(SUM(points), 0) FROM users WHERE team = ?", (team,)
            ) as cursor:
                row = await cursor.fetchone()
                return int(row[0])

    async def get_team_points(self) -> Dict[str, int]:
        """Point totals for every team"""
        return {team: await self.sum_points_for_team(team) for team in TEAMS}

    def _ranking_filter(self, team: Optional[str], excluded: Iterable[str]):
        clauses = []
        params: List = []
        if team is not None:
            clauses.append("team = ?")
            params.append(team)
        excluded = list(excluded or [])
        if excluded:
            placeholders = ", ".join("?" for _ in excluded)
            clauses.append(f"discord_id NOT IN ({placeholders})")
            params.extend(excluded)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    async def get_ranked_users(self, team: Optional[str] = None, excluded: Iterable[str] = (),
                               limit: Optional[int] = None, offset: int = 0) -> List[Dict]:
        """
        Users ordered by points descending

        Ties are broken by discord_id ascending so repeated reads of the
        same snapshot always return the same order.
        """
        where, params = self._ranking_filter(team, excluded)
        query = (
            f"SELECT discord_id, address, points, team FROM users {where} "
            "ORDER BY points DESC, discord_id ASC"
        )
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        async with aiosqlite.connect(self.db_file) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]

    async def count_ranked_users(self, team: Optional[str] = None, excluded: Iterable[str] = ()) -> int:
        where, params = self._ranking_filter(team, excluded)
        async with aiosqlite.connect(self.db_file) as db:
            async with db.execute(f"SELECT COUNT(*) FROM users {where}", params) as cursor:
                row = await cursor.fetchone()
                return int(row[0])

    async def get_team_players(self, team: str) -> List[Dict]:
        """Every member of a team, highest balance first"""
        return await self.get_ranked_users(team=team)

    async def get_zero_balance_users(self) -> List[Dict]:
        """Team members whose balance is exactly zero"""
        placeholders = ", ".join("?" for _ in TEAMS)
        async with aiosqlite.connect(self.db_file) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT discord_id, points, team FROM users WHERE points = 0 AND team IN ({placeholders})",
                TEAMS
            ) as cursor:
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]

    async def count_verified_users(self) -> int:
        async with aiosqlite.connect(self.db_file) as db:
            async with db.execute(
                "SELECT COUNT(*) FROM users WHERE address IS NOT NULL"
            ) as cursor:
                row = await cursor.fetchone()
                return int(row[0])

    async def iter_verified_users(self, page_size: int = 100) -> AsyncIterator[List[Dict]]:
        """
        Yield pages of users that have linked a wallet

        Pages are keyed on discord_id so the whole population is never
        held in memory at once.
        """
        last_id = ""
        while True:
            async with aiosqlite.connect(self.db_file) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(
                    "SELECT discord_id FROM users WHERE address IS NOT NULL AND discord_id > ? "
                    "ORDER BY discord_id ASC LIMIT ?",
                    (last_id, page_size)
                ) as cursor:
                    rows = [dict(row) for row in await cursor.fetchall()]

            if not rows:
                return
            yield rows
            if len(rows) < page_size:
                return
            last_id = rows[-1]['discord_id']

    async def get_setting(self, key: str) -> Optional[str]:
        async with aiosqlite.connect(self.db_file) as db:
            async with db.execute("SELECT value FROM settings WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else None

    async def set_setting(self, key: str, value: str):
        async with aiosqlite.connect(self.db_file) as db:
            await db.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value)
            )
            await db.commit()
