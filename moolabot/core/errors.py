"""
Exception types shared by the moola bot core and its command handlers
"""


class MoolaBotError(Exception):
    """Base class for errors the bot reports back to the invoking user"""


class InvalidInputError(MoolaBotError):
    """A command option was missing or out of range"""


class UserNotFoundError(MoolaBotError):
    def __init__(self, discord_id: str):
        super().__init__(f"No linked account for discord id {discord_id}")
        self.discord_id = discord_id


class InsufficientPointsError(MoolaBotError):
    def __init__(self, discord_id: str, balance: int, requested: int):
        super().__init__(
            f"User {discord_id} has {balance} points, {requested} requested"
        )
        self.discord_id = discord_id
        self.balance = balance
        self.requested = requested


class MemberNotFoundError(MoolaBotError):
    def __init__(self, discord_id: str):
        super().__init__(f"Member {discord_id} is not in the guild")
        self.discord_id = discord_id


class RoleNotFoundError(MoolaBotError):
    def __init__(self, role_ids):
        ids = ", ".join(str(r) for r in role_ids)
        super().__init__(f"Role(s) not found in guild: {ids}")
        self.role_ids = list(role_ids)


class InvalidPageError(MoolaBotError):
    def __init__(self, page: int, total_pages: int):
        super().__init__(f"Page {page} is outside 1..{total_pages}")
        self.page = page
        self.total_pages = total_pages
