"""
Logging configuration for the tablestore package.

All modules log through the shared "tablestore" logger. Library code never
configures handlers beyond the default console handler; the CLI reconfigures
the logger from the ``logging`` section of the configuration.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, TextIO


LOGGER_NAME = "tablestore"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console_output: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Set up and configure a logger with console and/or file handlers.

    Args:
        name: Logger name (default: "tablestore")
        level: Logging level as string ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        log_file: Optional path to log file. If provided, logs are written to this file.
        console_output: Whether to output logs to console (default: True)
        stream: Console stream (default: stdout)

    Returns:
        Configured logger instance

    Example:
        >>> logger = setup_logger("tablestore", level="DEBUG", log_file=Path("tablestore.log"))
        >>> logger.info("Committed version 3 of tables/orders")
    """
    logger = logging.getLogger(name)

    # Clear any existing handlers to avoid duplicates
    logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    if console_output:
        console_handler = logging.StreamHandler(stream or sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Get an existing logger instance (or a child such as "tablestore.table")."""
    return logging.getLogger(name)


_default_logger: Optional[logging.Logger] = None


def get_default_logger() -> logging.Logger:
    """
    Get or create the default tablestore logger.

    Returns:
        Default logger instance with INFO level and console output
    """
    global _default_logger
    if _default_logger is None:
        _default_logger = setup_logger()
    return _default_logger


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure the default tablestore logger.

    Reconfigures the shared logger in place, so module-level loggers
    obtained earlier pick up the new handlers and level.

    Example:
        >>> configure_logging(level="DEBUG", log_file=Path("tablestore.log"))
    """
    global _default_logger
    _default_logger = setup_logger(
        name=LOGGER_NAME,
        level=level,
        log_file=log_file,
        console_output=console_output,
        stream=stream,
    )


def configure_from_settings(settings: Dict[str, Any], stream: Optional[TextIO] = None) -> None:
    """
    Configure the default logger from a ``logging`` configuration section.

    Args:
        settings: Mapping with "level" and optional "file"
        stream: Console stream (default: stdout)
    """
    log_file = settings.get("file")
    configure_logging(
        level=str(settings.get("level") or "INFO"),
        log_file=Path(log_file) if log_file else None,
        stream=stream,
    )
