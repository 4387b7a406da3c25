"""
Logging configuration for the moola bot
"""

import logging
from pathlib import Path
from typing import Iterable

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# Gateway heartbeats, rate-limit chatter and access lines
QUIET_LOGGERS = (
    "discord.gateway",
    "discord.http",
    "discord.client",
    "aiohttp.access",
)


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def setup_logging(level: str = "INFO", log_file: str = "logs/moolabot.log",
                  quiet_loggers: Iterable[str] = QUIET_LOGGERS) -> logging.Logger:
    """
    Route all logging to a detailed log file and a short console format

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.
    """
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    # UTF-8 so team emoji survive in the file
    root_logger.addHandler(_handler(logging.FileHandler(log_file, encoding='utf-8'), numeric_level, FILE_FORMAT))
    root_logger.addHandler(_handler(logging.StreamHandler(), numeric_level, CONSOLE_FORMAT))

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("MoolaBot")
    logger.info(f"Logging initialized - Level: {level}, File: {log_file}")
    return logger
