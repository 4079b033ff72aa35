"""
Unified output system using Loguru.
Domain modules log through loguru; CLI-facing messages also go to the console.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import LoggingConfig, get_data_dir
from .console import safe_print

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"

_LEVEL_STYLES = {
    "debug": "cyan",
    "info": None,
    "warning": "yellow",
    "error": "red",
}


def setup_loguru(
    log_file: Path, level: str = "INFO", console_output: bool = False
) -> None:
    """
    Configure loguru with a rotating file sink.

    Args:
        log_file: Path to log file
        level: Minimum level for logging (DEBUG, INFO, WARNING, ERROR)
        console_output: Also emit log records to stderr
    """
    logger.remove()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation="10 MB",
        retention=5,  # Keep 5 backup files
        level=level,
        format=LOG_FORMAT,
        enqueue=False,
    )

    if console_output:
        logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logger.info(f"Loguru initialized: {log_file} (level={level})")


def configure_logging(logging_config: LoggingConfig) -> Path:
    """Set up loguru from the [logging] config section. Returns the log file path."""
    log_file: Optional[Path] = (
        Path(logging_config.log_file).expanduser() if logging_config.log_file else None
    )
    if log_file is None:
        log_file = get_data_dir() / "goodmusic.log"

    setup_loguru(log_file, logging_config.level.upper(), logging_config.console_output)
    return log_file


def log(message: str, level: str = "info") -> None:
    """
    Unified logging: writes to the log AND prints to the console.

    Use this instead of print() for user-facing messages that should also be logged.

    Args:
        message: User-facing message
        level: Log level (debug, info, warning, error)
    """
    log_func = getattr(logger, level)
    log_func(message)
    safe_print(message, style=_LEVEL_STYLES.get(level), markup=False)
