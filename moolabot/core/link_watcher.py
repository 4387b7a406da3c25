"""
Watches the store for a user to finish the external wallet-link flow
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

LinkedCallback = Callable[[Dict], Awaitable[None]]
ExpiredCallback = Callable[[str], Awaitable[None]]


class LinkWatcher:
    """
    One cancellable polling task per user

    Each watch stops on its own once the user's row shows a linked
    address different from the one they started with, or after
    max_lifetime seconds. Starting a new watch for the same user cancels
    the previous one.
    """

    def __init__(self, database, poll_interval: float = 5.0, max_lifetime: float = 300.0):
        self.database = database
        self.poll_interval = poll_interval
        self.max_lifetime = max_lifetime
        self.logger = logging.getLogger(__name__)
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_watching(self, discord_id: str) -> bool:
        task = self._tasks.get(discord_id)
        return task is not None and not task.done()

    def start(self, discord_id: str, on_linked: LinkedCallback,
              on_expired: Optional[ExpiredCallback] = None,
              previous_address: Optional[str] = None) -> asyncio.Task:
        self.stop(discord_id)
        task = asyncio.create_task(
            self._watch(discord_id, on_linked, on_expired, previous_address),
            name=f"link-watch-{discord_id}"
        )
        self._tasks[discord_id] = task
        task.add_done_callback(lambda t, uid=discord_id: self._forget(uid, t))
        self.logger.debug(f"Started link watch for {discord_id}")
        return task

    def stop(self, discord_id: str) -> bool:
        task = self._tasks.pop(discord_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        self.logger.debug(f"Cancelled link watch for {discord_id}")
        return True

    async def stop_all(self):
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logger.info(f"Stopped {len(tasks)} link watch(es)")

    def _forget(self, discord_id: str, task: asyncio.Task):
        if self._tasks.get(discord_id) is task:
            del self._tasks[discord_id]

    async def _watch(self, discord_id: str, on_linked: LinkedCallback,
                     on_expired: Optional[ExpiredCallback], previous_address: Optional[str]):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_lifetime

        while loop.time() < deadline:
            try:
                user = await self.database.get_user(discord_id)
            except Exception as e:
                self.logger.error(f"Error polling link status for {discord_id}: {e}")
                user = None

            if user and user.get('address') and user['address'] != previous_address:
                self.logger.info(f"Wallet linked for {discord_id}")
                try:
                    await on_linked(user)
                except Exception as e:
                    self.logger.error(f"Link callback failed for {discord_id}: {e}")
                return

            await asyncio.sleep(self.poll_interval)

        self.logger.info(f"Link watch for {discord_id} expired after {self.max_lifetime}s")
        if on_expired:
            try:
                await on_expired(discord_id)
            except Exception as e:
                self.logger.error(f"Link expiry callback failed for {discord_id}: {e}")
