"""
Process-wide runtime settings that admins can change while the bot runs
"""

import logging

from moolabot.core.errors import InvalidInputError


class RuntimeSettings:
    """
    Holds mutable settings for the lifetime of the process

    Values are loaded once at startup (persisted value first, config
    default second) and only change through the setter methods, which
    write through to the store.
    """

    WHITELIST_MINIMUM_KEY = "whitelist_minimum"

    def __init__(self, database, default_whitelist_minimum: int = 100):
        self.database = database
        self.logger = logging.getLogger(__name__)
        self._default_whitelist_minimum = default_whitelist_minimum
        self._whitelist_minimum = default_whitelist_minimum
        self._loaded = False

    async def load(self):
        stored = await self.database.get_setting(self.WHITELIST_MINIMUM_KEY)
        if stored is not None:
            try:
                self._whitelist_minimum = int(stored)
            except ValueError:
                self.logger.warning(
                    f"Ignoring invalid stored whitelist minimum {stored!r}, "
                    f"using default {self._default_whitelist_minimum}"
                )
        self._loaded = True
        self.logger.info(f"Runtime settings loaded - whitelist minimum: {self._whitelist_minimum}")

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def whitelist_minimum(self) -> int:
        return self._whitelist_minimum

    async def set_whitelist_minimum(self, value: int) -> int:
        if value is None or value <= 0:
            raise InvalidInputError("Whitelist minimum must be a positive integer")

        await self.database.set_setting(self.WHITELIST_MINIMUM_KEY, str(value))
        self._whitelist_minimum = value
        self.logger.info(f"Whitelist minimum updated to {value}")
        return value
