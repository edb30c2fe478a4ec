"""Logging configuration shared by the edge server and the aggregator worker"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from shared.config import Settings

DATE_FORMAT = "[%Y-%m-%d %H:%M:%S]"

# Third-party loggers and the level they are held at outside DEBUG
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "asyncio": logging.ERROR,
    "asyncpg": logging.WARNING,
    "aiohttp.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def _rich_handler() -> RichHandler:
    handler = RichHandler(
        console=Console(force_terminal=True, width=120),
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        tracebacks_width=120,
    )
    handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt=DATE_FORMAT))
    return handler


def setup_logging(settings: Settings, service: str = "edge") -> None:
    """Route all logging through a Rich console handler.

    Falls back to plain stderr formatting if the console cannot be set up.
    """
    level = getattr(logging, settings.log_level, logging.INFO)

    try:
        # force=True: uvicorn configures the root logger first
        logging.basicConfig(level=level, handlers=[_rich_handler()], force=True)
    except Exception as e:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            force=True,
        )
        logging.getLogger(__name__).warning(f"Rich logging setup failed: {e}, using plain logging")

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(logging.INFO if level == logging.DEBUG else quiet_level)

    logging.getLogger(__name__).info(
        f"Logging: {settings.log_level} | Service: {service} | Env: {settings.environment}"
    )
