"""Logging configuration for the proxy."""

import logging
import sys

LOGGER_NAME = "dialect-proxy"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Set up the proxy logger with a stdout handler and timestamped format."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate so pytest's caplog and uvicorn's root handlers see our records
    logger.propagate = True

    return logger


def parse_log_level(value: object, default: int = logging.INFO) -> int:
    """Map a config value such as ``"debug"`` or ``10`` to a logging level."""
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        level = logging.getLevelName(value.strip().upper())
        if isinstance(level, int):
            return level
    return default
