"""Logging module for the proxy."""

from .setup import LOGGER_NAME, parse_log_level, setup_logging

__all__ = [
    "LOGGER_NAME",
    "parse_log_level",
    "setup_logging",
]
