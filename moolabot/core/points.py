"""
Admin point adjustments: transfers between users and fines
"""

import logging
from typing import Dict

from moolabot.core.errors import InsufficientPointsError, InvalidInputError, UserNotFoundError


def _require_positive(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInputError("Amount must be a positive whole number")
    return amount


class PointsLedger:
    def __init__(self, database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    async def balance(self, discord_id: str) -> int:
        user = await self.database.get_user(discord_id)
        if not user:
            raise UserNotFoundError(discord_id)
        return user['points']

    async def transfer(self, sender_id: str, receiver_id: str, amount: int) -> Dict[str, int]:
        """
        Move points from sender to receiver

        Both balance writes happen in a single store transaction.

        Returns:
            Dict with the new 'sender' and 'receiver' balances
        """
        amount = _require_positive(amount)
        if sender_id == receiver_id:
            raise InvalidInputError("You can't transfer points to yourself")

        balances = await self.database.transfer_points(sender_id, receiver_id, amount)
        self.logger.info(
            f"Transfer {sender_id} -> {receiver_id}: {amount} points "
            f"(sender now {balances['sender']}, receiver now {balances['receiver']})"
        )
        return balances

    async def fine(self, target_id: str, amount: int) -> int:
        """
        Deduct points from a user, refusing to go below zero

        Returns:
            The user's new balance
        """
        amount = _require_positive(amount)

        user = await self.database.get_user(target_id)
        if not user:
            raise UserNotFoundError(target_id)

        current = user['points']
        if current < amount:
            raise InsufficientPointsError(target_id, current, amount)

        new_balance = current - amount
        if not await self.database.update_points(target_id, new_balance):
            raise UserNotFoundError(target_id)

        self.logger.info(f"Fined {target_id} {amount} points, new balance {new_balance}")
        return new_balance
