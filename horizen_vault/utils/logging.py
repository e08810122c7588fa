"""Logging configuration for the Horizen vault.

Log output goes to stderr through Rich so that command output on stdout
stays clean. Passwords and key material are never passed to a logger;
strings shaped like provider API keys are masked by ``RedactingFilter``
in case one slips into a message.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
SIMPLE_FORMAT = "%(message)s"

ROOT_LOGGER = "horizen_vault"

# OpenAI / Anthropic ("sk-...", "sk-ant-...") and Gemini ("AIza...") keys
API_KEY_PATTERN = re.compile(r"\b(sk-[A-Za-z0-9_\-]{8,}|AIza[A-Za-z0-9_\-]{20,})")


class RedactingFilter(logging.Filter):
    """Masks API key shaped substrings in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = API_KEY_PATTERN.sub(lambda m: m.group(0)[:3] + "***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    rich_output: bool = True,
) -> logging.Logger:
    """
    Configure the package logger.

    Calling this again replaces the handlers from the previous call.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file that receives every message at DEBUG level
        rich_output: Use Rich for console output

    Returns:
        Configured package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else log_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if rich_output:
        console_handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler.setLevel(log_level)
    console_handler.addFilter(RedactingFilter())
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(RedactingFilter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Module name (e.g., "horizen_vault.vault.session")
    """
    return logging.getLogger(name)
