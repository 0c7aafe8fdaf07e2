"""Logging configuration"""

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

# Loggers silenced by MUTE_SPOTIFY_DEBUG
SPOTIFY_LOGGERS = ("spotibot.spotify", "spotibot.cogs.spotify")


def setup_logging(level: str = "INFO", mute_spotify_debug: bool = False) -> None:
    """Configure application logging with Rich handler"""
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Enable UTF-8 output on Windows
    if sys.platform == "win32":
        import codecs

        sys.stdout = codecs.getwriter("utf-8")(sys.stdout.buffer)
        sys.stderr = codecs.getwriter("utf-8")(sys.stderr.buffer)

    console = Console(
        force_terminal=True,
        width=120,
    )

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        tracebacks_width=120,
    )

    rich_handler.setFormatter(
        logging.Formatter(fmt="%(message)s", datefmt="[%Y-%m-%d %H:%M:%S]")
    )

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%Y-%m-%d %H:%M:%S]",
        handlers=[rich_handler],
        force=True,
    )

    # Reduce discord.py log noise
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("discord.http").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if mute_spotify_debug:
        for name in SPOTIFY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
