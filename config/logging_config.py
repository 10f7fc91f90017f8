"""Logging setup: console, rotating run log and a separate provider call log."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAIN_LOG = "bookstudio.log"
PROVIDER_LOG = "provider_calls.log"

# Adapters that talk to text and image providers
PROVIDER_LOGGERS = (
    "tools.text_client",
    "tools.agent_sdk_client",
    "tools.openai_client",
    "tools.image_client",
)

# HTTP client chatter drowns out generation progress at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai")


def _rotating_handler(
    path: Path,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(path), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str | Path] = None,
    console_enabled: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> Path:
    """Configure root logging for a generation process.

    Provider adapters log every call at DEBUG into ``provider_calls.log``
    regardless of ``level``; their records still reach the root handlers
    at ``level``. Calling this again replaces the previous handlers.

    Returns:
        Path of the main log file.
    """
    log_dir = Path(log_dir or "./data/logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    main_log = log_dir / MAIN_LOG
    root_logger.addHandler(_rotating_handler(main_log, level, formatter, max_bytes, backup_count))

    provider_handler = _rotating_handler(
        log_dir / PROVIDER_LOG, logging.DEBUG, formatter, max_bytes, backup_count,
    )
    for name in PROVIDER_LOGGERS:
        provider_logger = logging.getLogger(name)
        provider_logger.setLevel(logging.DEBUG)
        provider_logger.handlers.clear()
        provider_logger.addHandler(provider_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).debug("Logging initialized: level=%s, dir=%s", level, log_dir)
    return main_log
