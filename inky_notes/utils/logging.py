"""Logging configuration and utilities."""

import logging
import logging.handlers
import sys
from pathlib import Path

from ..config import LoggingConfig


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for console output."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record):
        """Format log record with colors."""
        # Color a copy so file handlers sharing the record stay plain
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
            )

        return super().format(record)


def setup_logging(config: LoggingConfig, stream=None) -> None:
    """Setup logging configuration.

    Args:
        config: Logging configuration object
        stream: Console stream, defaults to stderr so command output stays clean
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, config.level))

    console_formatter = ColoredFormatter(config.format)
    file_formatter = logging.Formatter(config.format)

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(getattr(logging, config.level))
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if config.file_path:
        file_path = Path(config.file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        # Use rotating file handler to prevent huge log files
        file_handler = logging.handlers.RotatingFileHandler(
            filename=file_path,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(getattr(logging, config.level))
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    _configure_third_party_loggers(config.level)

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured - Level: {config.level}")
    if config.file_path:
        logger.debug(f"Log file: {config.file_path}")


def _configure_third_party_loggers(level: str) -> None:
    """Configure logging levels for third-party libraries."""
    third_party_loggers = {
        "sqlalchemy.engine": "WARNING",
        "sqlalchemy.pool": "WARNING",
        "sqlalchemy.dialects": "WARNING",
        "aiosqlite": "WARNING",
        "asyncio": "WARNING",
    }

    for logger_name, logger_level in third_party_loggers.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, logger_level))

    # If debug mode, show SQLAlchemy queries
    if level == "DEBUG":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

